"""FastAPI routes for the operator login flow."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request

from controllers.login_controller import check_login, get_qr_image, get_status, rearm

router = APIRouter(tags=["login"])


@router.get("/check-login")
async def check_login_route(request: Request, poll: Optional[str] = None):
	"""Show the proof screenshot or the QR page; `?poll=1` answers 401 until logged in."""
	try:
		return await check_login(request, poll=bool(poll))
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/status")
async def status_route(request: Request):
	try:
		return await get_status(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/qr")
async def qr_route(request: Request):
	"""Return the login QR code as PNG bytes."""
	try:
		return await get_qr_image(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/rearm")
async def rearm_route(request: Request):
	try:
		return await rearm(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
