from gearbook import create_app

app = create_app()
