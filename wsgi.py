"""Production entry point: gunicorn wsgi:app --bind 0.0.0.0:$PORT"""

from dotenv import load_dotenv

load_dotenv()

from paybridge import create_app  # noqa: E402

app = create_app("production")
