from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from mod_catalogue.models.mod import Mod, Page
from mod_catalogue.models.search import ModSortOptions, SearchChain, SearchOptions

router = APIRouter(tags=["mods"])


@router.get("/mods", response_model=Page)
async def api_search_mods(
    request: Request,
    page: int = Query(0, ge=0),
    per_page: int = Query(20, ge=1, le=100),
    sort_by: int = Query(ModSortOptions.ID, ge=0, le=max(ModSortOptions)),
    sort_direction: int = Query(1, description="1 = ascending, -1 = descending"),
    tags_include: int = Query(0, ge=0),
    tags_exclude: int = Query(0, ge=0),
    tags_include_chain: int = Query(SearchChain.AND, ge=0, le=1),
    dlcs_include: int = Query(0, ge=0),
    dlcs_exclude: int = Query(0, ge=0),
    dlcs_include_chain: int = Query(SearchChain.AND, ge=0, le=1),
    search: Optional[str] = Query(None, min_length=1, max_length=256),
    dependants_of: Optional[str] = Query(None),
):
    if sort_direction not in (1, -1):
        raise HTTPException(status_code=422, detail="sort_direction must be 1 or -1")
    options = SearchOptions(
        page=page,
        per_page=per_page,
        sort_by=ModSortOptions(sort_by),
        sort_direction=sort_direction,
        tags_include=tags_include,
        tags_exclude=tags_exclude,
        tags_include_chain=SearchChain(tags_include_chain),
        dlcs_include=dlcs_include,
        dlcs_exclude=dlcs_exclude,
        dlcs_include_chain=SearchChain(dlcs_include_chain),
        search=search,
        dependants_of=dependants_of,
    )
    return await request.app.state.mod_store.search(options)


@router.get("/mods/{mod_id}", response_model=Mod)
async def api_get_mod(mod_id: str, request: Request):
    mod = await request.app.state.mod_store.find_one(mod_id)
    if mod is None:
        raise HTTPException(status_code=404, detail=f"Mod '{mod_id}' not found")
    return mod
