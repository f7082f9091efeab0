from typing import Iterator, List
from fastapi import APIRouter, Body
from fastapi.responses import StreamingResponse

from app.models.provisioning import REQUIRED_SCOPES, ProvisionRequest, ProvisionRun, TokenScope
from app.services.provisioner import provisioner

router = APIRouter()


@router.get("/scopes", response_model=List[TokenScope])
async def get_scopes():
    """Token scopes a personal access token needs for the provision endpoints."""
    return REQUIRED_SCOPES


@router.post("/provision", response_model=ProvisionRun)
def provision(request: ProvisionRequest = Body(...)):
    """
    Push secrets or variables into a repository environment.

    Args:
        request: Connection parameters and the items to push

    Returns:
        Final progress and the ordered list of results
    """
    return provisioner.run(request.connection(), request.items)


@router.post("/provision/stream")
def provision_stream(request: ProvisionRequest = Body(...)):
    """
    Same as /provision, but streams one JSON event per line as the run progresses.

    The request is validated before the response starts, so an incomplete form
    still gets a 400 instead of an empty stream.
    """
    params = request.connection()
    items = provisioner.prepare(params, request.items)

    def events() -> Iterator[str]:
        for event in provisioner.iter_run(params, items):
            yield event.model_dump_json() + "\n"

    return StreamingResponse(events(), media_type="application/x-ndjson")
