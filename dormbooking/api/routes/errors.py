from fastapi import HTTPException, status

from ...core import errors

_STATUS_BY_ERROR = {
    errors.SlotNotFound: status.HTTP_404_NOT_FOUND,
    errors.BookingNotFound: status.HTTP_404_NOT_FOUND,
    errors.NotAuthorized: status.HTTP_403_FORBIDDEN,
    errors.InvalidUnits: status.HTTP_422_UNPROCESSABLE_ENTITY,
    errors.SlotExpired: status.HTTP_400_BAD_REQUEST,
    errors.SlotFull: status.HTTP_409_CONFLICT,
    errors.QuotaExceeded: status.HTTP_409_CONFLICT,
}


def to_http(exc: errors.BookingError) -> HTTPException:
    status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    detail: str | dict = exc.message
    if isinstance(exc, errors.QuotaExceeded):
        detail = {
            "message": exc.message,
            "limit": exc.limit,
            "current_usage": exc.current_usage,
        }
    return HTTPException(status_code=status_code, detail=detail)
