from zors import create_app

app = create_app()
