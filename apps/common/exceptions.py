from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler


class IllegalTransition(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "La operacion no esta permitida en el estado actual del pedido."
    default_code = "invalid_state"


class WindowExpired(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "La ventana de cancelacion ya expiro."
    default_code = "window_expired"


class InsufficientBalance(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Puntos insuficientes."
    default_code = "insufficient_points"


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        return response

    if isinstance(response.data, dict):
        detail = response.data.get("detail", "Request failed")
        fields = {k: v for k, v in response.data.items() if k != "detail"}
    else:
        detail = "Request failed"
        fields = {"non_field_errors": response.data}

    response.data = {
        "code": getattr(exc, "default_code", "error"),
        "detail": detail,
        "fields": fields,
    }
    return response
