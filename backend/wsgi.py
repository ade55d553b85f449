from queuepos import create_app

app = create_app()
