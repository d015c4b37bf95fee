import uvicorn
from dotenv import load_dotenv
from loguru import logger

from thinking_relay.app_config import apply_runtime_env, load_json_config, parse_app_config, resolve_runtime_env
from thinking_relay.logging_config import setup_logging
from thinking_relay.server import create_app


def main() -> None:
    load_dotenv()

    app_config = apply_runtime_env(parse_app_config(load_json_config()), resolve_runtime_env())

    for description in setup_logging(level=app_config.log_level, consumers=app_config.log_consumers):
        logger.info(f"Logging to {description}")

    logger.info(
        f"Reasoner: {app_config.reasoner.provider}/{app_config.reasoner.model}, "
        f"answerer: {app_config.answerer.provider}/{app_config.answerer.model}"
    )

    uvicorn.run(
        create_app(app_config),
        host=app_config.host,
        port=app_config.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
