import uvicorn

from ledger_submit.config import cfg


def main():
    server = cfg.get("server", {})
    uvicorn.run("ledger_submit.app:app", host=server.get("host", "0.0.0.0"), port=int(server.get("port", 8000)), lifespan="on")


if __name__ == "__main__":
    main()
