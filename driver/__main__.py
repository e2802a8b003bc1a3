import uvicorn

from driver.services.dependencies import get_driver_config


def main() -> None:
    config = get_driver_config()
    uvicorn.run("driver.main:app", host="0.0.0.0", port=config.port)


if __name__ == "__main__":
    main()
