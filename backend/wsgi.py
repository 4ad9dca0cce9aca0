from stockwise import create_app

app = create_app()
