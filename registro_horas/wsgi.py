from registro_horas import create_app

app = create_app()
