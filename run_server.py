# run_server.py
import os

from dotenv import load_dotenv

load_dotenv()

from server import create_app  # noqa: E402  (depois do .env: DB_URL é lido no import)

app = create_app()

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "5000"))
    app.run(host=host, port=port, threaded=True)
