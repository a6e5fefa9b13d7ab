from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from promproxy.app.core.prometheus import PrometheusClient, PrometheusError
from promproxy.app.schemas.cpu_usage import CpuUsageResponse, ErrorResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class InvalidDurationError(ValueError):
    pass


def get_prometheus_client(request: Request) -> PrometheusClient:
    """Returns the shared PrometheusClient instance."""
    return request.app.state.prometheus_client


def parse_window_seconds(seconds: str) -> int:
    if not (seconds.isascii() and seconds.isdigit()):
        raise InvalidDurationError(f"invalid duration: {seconds}")
    return int(seconds)


@router.get(
    "/cpu_usage/{seconds}/{container}",
    response_model=CpuUsageResponse,
    responses={500: {"model": ErrorResponse}},
)
async def cpu_usage(
    seconds: str,
    container: str,
    prometheus: PrometheusClient = Depends(get_prometheus_client),
):
    try:
        window = parse_window_seconds(seconds)
        value = await prometheus.query_average_cpu(container, window)
    except (InvalidDurationError, PrometheusError) as e:
        logger.warning(f"CPU usage query failed for container {container}: {e}")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error=str(e)).model_dump(),
        )

    logger.info(f"CPU usage for {container} over {window}s: {value}")
    return CpuUsageResponse(average_cpu_usage=value)
