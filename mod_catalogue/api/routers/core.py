from datetime import datetime, timezone

from fastapi import APIRouter, Request

from mod_catalogue.models.mod import RootResponse

router = APIRouter(tags=["core"])


@router.post("/", response_model=RootResponse)
async def read_status(request: Request):
    """Process info plus the stats of the last completed sweep."""
    state = request.app.state
    estimated = await state.mod_store.estimated_count()
    last_update = await state.update_store.get_last_update()
    return RootResponse(
        start_time=state.settings.started_at,
        commit=state.settings.commit,
        received_request=datetime.now(timezone.utc),
        estimated_mod_count=estimated,
        last_update=last_update,
    )
