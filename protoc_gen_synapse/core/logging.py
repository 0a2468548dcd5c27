import logging
import sys


class ContextFormatter(logging.Formatter):
    """Formatter that fills in optional proto_file and stage fields."""
    def format(self, record):
        if not hasattr(record, 'proto_file'):
            record.proto_file = '-'
        if not hasattr(record, 'stage'):
            record.stage = '-'
        return super().format(record)


def configure_logging(level: str = "WARNING") -> None:
    # stdout carries the CodeGeneratorResponse
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ContextFormatter(
        "%(asctime)s %(levelname)s %(name)s [proto_file=%(proto_file)s stage=%(stage)s] - %(message)s"
    ))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        handlers=[handler],
    )
