"""Placement control endpoints with simple token auth."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import TYPE_CHECKING

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    Header,
    HTTPException,
    Query,
    Request,
    status,
)
from fastapi.concurrency import run_in_threadpool

from pixel_embedder.services.placement import NoSessionError, PlacementBusyError
from pixel_embedder.services.rasterizer import centered_origin

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from pixel_embedder.containers import AppContainer
    from pixel_embedder.services.placement import PlacementController

router = APIRouter(tags=["control"])

_logger = logging.getLogger(__name__)


def _get_control_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.control_token


async def require_control_token(
    x_control_token: str | None = Header(default=None),
    control_token: str = Depends(_get_control_token),
) -> None:
    """Ensure requests include a valid control token."""
    if not x_control_token or x_control_token != control_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.post(
    "/embed",
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_control_token)],
)
async def embed(  # noqa: PLR0913
    request: Request,
    background_tasks: BackgroundTasks,
    x: int = Query(default=100, ge=0),
    y: int = Query(default=100, ge=0),
    max_width: int = Query(default=50, ge=1),
    check_existing: bool = True,
) -> dict[str, object]:
    """Rasterize the posted image and place it with its top-left at (x, y)."""
    container: AppContainer = request.app.state.container
    return await _start_embedding(
        container, request, background_tasks, x, y, max_width, check_existing
    )


@router.post(
    "/embed/center",
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_control_token)],
)
async def embed_center(
    request: Request,
    background_tasks: BackgroundTasks,
    max_width: int = Query(default=200, ge=1),
    check_existing: bool = True,
) -> dict[str, object]:
    """Rasterize the posted image and place it at the canvas centre."""
    container: AppContainer = request.app.state.container
    x, y = centered_origin(
        container.settings.grid_width, container.settings.grid_height, max_width
    )
    return await _start_embedding(
        container, request, background_tasks, x, y, max_width, check_existing
    )


@router.post(
    "/resume",
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_control_token)],
)
async def resume(
    request: Request, background_tasks: BackgroundTasks, validate: bool = False
) -> dict[str, object]:
    """Resume the stored session, optionally recovering missing pixels first."""
    controller = _controller(request)
    _ensure_not_running(controller)
    record = controller.check_session()
    can_validate = validate and record is not None and bool(record.original_targets)
    if record is None or not (record.queue or can_validate):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No session to resume"
        )
    _reserve(controller)
    background_tasks.add_task(
        _run_guarded, controller, lambda: controller.resume(validate=validate)
    )
    return {
        "status": "resuming",
        "session_id": record.session_id,
        "remaining": len(record.queue),
        "validate": validate,
    }


@router.post(
    "/validate",
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_control_token)],
)
async def validate(
    request: Request, background_tasks: BackgroundTasks
) -> dict[str, object]:
    """Check original pixels against the canvas and place the missing ones."""
    controller = _controller(request)
    _ensure_not_running(controller)
    record = controller.check_session()
    has_targets = bool(record and record.original_targets)
    if not has_targets and not controller.status().original_targets_count:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No original pixels to validate",
        )
    _reserve(controller)
    background_tasks.add_task(_run_guarded, controller, controller.validate)
    return {"status": "validating"}


@router.post("/stop", dependencies=[Depends(require_control_token)])
async def stop(request: Request) -> dict[str, object]:
    """Stop placement after the in-flight pixel."""
    stopped = _controller(request).stop()
    return {"status": "stopping" if stopped else "idle"}


@router.get("/status", dependencies=[Depends(require_control_token)])
async def placement_status(request: Request) -> dict[str, object]:
    """Return current progress and pacing details."""
    return asdict(_controller(request).status())


@router.get("/session", dependencies=[Depends(require_control_token)])
async def get_session(request: Request) -> dict[str, object]:
    """Return the stored resumable session."""
    record = _controller(request).check_session()
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No resumable session found"
        )
    return record.to_payload()


@router.delete("/session", dependencies=[Depends(require_control_token)])
async def delete_session(request: Request) -> dict[str, str]:
    """Delete the stored session."""
    try:
        _controller(request).clear_session()
    except PlacementBusyError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=str(exc)
        ) from exc
    return {"status": "cleared"}


async def _start_embedding(  # noqa: PLR0913
    container: AppContainer,
    request: Request,
    background_tasks: BackgroundTasks,
    x: int,
    y: int,
    max_width: int,
    check_existing: bool,
) -> dict[str, object]:
    controller = container.controller
    _ensure_not_running(controller)
    image_bytes = await request.body()
    writes = await run_in_threadpool(
        container.rasterizer.rasterize, image_bytes, x, y, max_width
    )
    if not writes:
        raise HTTPException(
            status_code=422,
            detail="No visible pixels found in image",
        )
    _reserve(controller)
    background_tasks.add_task(
        _run_guarded,
        controller,
        lambda: controller.start(writes, check_existing=check_existing),
    )
    return {
        "status": "started",
        "pixels": len(writes),
        "origin": {"x": x, "y": y},
        "check_existing": check_existing,
    }


async def _run_guarded(
    controller: PlacementController, run: Callable[[], Awaitable[object]]
) -> None:
    try:
        await run()
    except (PlacementBusyError, NoSessionError) as exc:
        _logger.warning("Placement request ignored: %s", exc)
    finally:
        controller.release()


def _controller(request: Request) -> PlacementController:
    container: AppContainer = request.app.state.container
    return container.controller


def _ensure_not_running(controller: PlacementController) -> None:
    if controller.busy:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Already placing pixels. Stop the current run first.",
        )


def _reserve(controller: PlacementController) -> None:
    try:
        controller.reserve()
    except PlacementBusyError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=str(exc)
        ) from exc
