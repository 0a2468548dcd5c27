"""gRPC helpers used by generated servicers."""
import logging
from typing import Union

import grpc

from protoc_gen_synapse.runtime.errors import INTERNAL, ServiceError, StorageError, ValidationError

log = logging.getLogger(__name__)

FIELD_METADATA_KEY = "synapse-field"


def status_code(error: ServiceError) -> grpc.StatusCode:
    return grpc.StatusCode[error.status]


async def abort(
    context: grpc.aio.ServicerContext,
    cause: Union[ValidationError, StorageError],
    rich_errors: bool = False,
) -> None:
    """Abort the call with the status mapped from cause.

    With rich_errors the offending field, when known, is sent in the
    trailing metadata under FIELD_METADATA_KEY.
    """
    error = ServiceError(cause)
    if error.status == INTERNAL:
        log.error("Storage failure: %s", error, exc_info=cause)
    if rich_errors and error.field:
        context.set_trailing_metadata(((FIELD_METADATA_KEY, error.field),))
    await context.abort(status_code(error), str(error))
