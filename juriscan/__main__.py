# juriscan/__main__.py
# Permite rodar: python -m juriscan <subcomando>
from dotenv import load_dotenv

# .env antes dos imports do pacote: DB_URL é lido no import de persistence.db
load_dotenv()

from juriscan.main import main  # noqa: E402

if __name__ == "__main__":
    raise SystemExit(main())
