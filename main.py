#!/usr/bin/env python
# main.py: atalho para a CLI do pacote (equivale a: python -m juriscan <subcomando>)
from dotenv import load_dotenv

load_dotenv()

from juriscan.main import main  # noqa: E402

if __name__ == "__main__":
    raise SystemExit(main())
