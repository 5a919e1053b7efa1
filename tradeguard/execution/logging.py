from tradeguard.logging.config import LoggerConfig
from tradeguard.logging.prefix import LOG_PREFIX
from tradeguard.logging.run_logger import RunLogger


def create_execution_logger(component: str, **ctx) -> RunLogger:
    cfg = LoggerConfig(
        stdout=True,
        file=False,
    )

    return (
        RunLogger(
            name="tradeguard",
            cfg=cfg,
            prefix=LOG_PREFIX.get(component.upper(), ""),
        )
        .with_context(component=component.lower(), **ctx)
    )
