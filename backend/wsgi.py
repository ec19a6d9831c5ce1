from itad import create_app

app = create_app()
