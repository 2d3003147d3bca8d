from app.circle import create_app

app = create_app()
