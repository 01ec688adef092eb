"""WSGI entry point: `gunicorn api.index:app` or `flask --app api.index run`."""
from division_forms.app import create_app

app = create_app()

if __name__ == '__main__':
    app.run(debug=True, port=5000)
