"""Run the gateway: python -m mailgate"""

import uvicorn
from dotenv import load_dotenv

from mailgate.shared.config import ConfigResolver


def main() -> None:
    load_dotenv()
    server = ConfigResolver().server_config()
    uvicorn.run("mailgate.api.app:app", host=server.host, port=server.port)


if __name__ == "__main__":
    main()
