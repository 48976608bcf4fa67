from app.roledash import create_app

app = create_app()
