from app.pms import create_app

app = create_app()
