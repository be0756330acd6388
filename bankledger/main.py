import uvicorn

from . import config


def main():
    uvicorn.run("bankledger.app:app", host=config.listen_host(), port=config.listen_port(), log_config=None)


if __name__ == "__main__":
    main()
