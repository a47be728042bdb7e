import logging

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.responses import JSONResponse

from netforge import __version__
from netforge.controller import NetworkController, NetworkKind
from netforge.docker_manager import DockerError, RuntimeRejected, RuntimeUnavailable
from netforge.network import NetworkError, NoActiveCluster, NoAvailableNetworks


logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NoAvailableNetworks: status.HTTP_409_CONFLICT,
    NoActiveCluster: status.HTTP_412_PRECONDITION_FAILED,
    RuntimeUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    RuntimeRejected: status.HTTP_502_BAD_GATEWAY,
}


def status_for(exc: Exception) -> int:
    for exc_type, code in ERROR_STATUS.items():
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _controller(request: Request) -> NetworkController:
    return request.app.state.controller


def _create(request: Request, kind: NetworkKind, name: str | None) -> JSONResponse:
    result = _controller(request).request_network(kind, name)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"network": result.to_dict()},
    )


router = APIRouter()


@router.get("/")
def index():
    return {"status": "OK"}


@router.get("/api/networks")
def list_networks(request: Request):
    """List the private subnets currently in use by Docker networks."""
    networks = _controller(request).existing_allocations()
    return {"networks": [str(n) for n in networks]}


@router.post("/api/bridge")
def create_bridge_network(request: Request):
    return _create(request, NetworkKind.BRIDGE, None)


@router.post("/api/bridge/{name}")
def create_named_bridge_network(request: Request, name: str):
    return _create(request, NetworkKind.BRIDGE, name)


@router.post("/api/overlay")
def create_overlay_network(request: Request):
    return _create(request, NetworkKind.OVERLAY, None)


@router.post("/api/overlay/{name}")
def create_named_overlay_network(request: Request, name: str):
    """Create an attachable overlay network; requires an active swarm."""
    return _create(request, NetworkKind.OVERLAY, name)


async def allocation_exception_handler(request: Request, exc: Exception):
    code = status_for(exc)
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=code,
        content={"error": exc.__class__.__name__, "message": str(exc)},
    )


def create_app(controller: NetworkController) -> FastAPI:
    """Build the FastAPI application around a ready controller."""
    app = FastAPI(
        title="netforge",
        description="Allocates private subnets for Docker networks",
        version=__version__,
    )
    app.state.controller = controller
    app.include_router(router)
    app.add_exception_handler(NetworkError, allocation_exception_handler)
    app.add_exception_handler(DockerError, allocation_exception_handler)
    return app
