from kedai import create_app

app = create_app()
