"""Tracker API routes."""

from aiohttp import web

from geotracker.tracking import SensorErrorRaised

from .middleware import create_error_response, parse_json_body


def setup_tracker_routes(app: web.Application) -> None:
    """Register tracker routes."""
    app.router.add_get("/api/v1/health", health_handler)
    app.router.add_get("/api/v1/tracker/status", status_handler)
    app.router.add_get("/api/v1/tracker/position", position_handler)
    app.router.add_post("/api/v1/tracker/retry", retry_handler)
    app.router.add_post("/api/v1/tracker/start", start_handler)
    app.router.add_post("/api/v1/tracker/stop", stop_handler)
    app.router.add_post("/api/v1/tracker/oneshot", oneshot_handler)
    app.router.add_put("/api/v1/tracker/visibility", visibility_handler)
    app.router.add_get("/api/v1/tracker/config", config_handler)
    app.router.add_put("/api/v1/tracker/config", update_config_handler)


async def health_handler(request: web.Request) -> web.Response:
    """GET /api/v1/health - Liveness and version."""
    controller = request.app["controller"]
    return web.json_response(await controller.get_health())


async def status_handler(request: web.Request) -> web.Response:
    """GET /api/v1/tracker/status - Current tracker snapshot."""
    controller = request.app["controller"]
    return web.json_response(await controller.get_status())


async def position_handler(request: web.Request) -> web.Response:
    """GET /api/v1/tracker/position - Last known position."""
    controller = request.app["controller"]
    result = await controller.get_position()
    if result is None:
        return create_error_response("NO_FIX", "No position has been reported yet", status=404)
    return web.json_response(result)


async def retry_handler(request: web.Request) -> web.Response:
    """POST /api/v1/tracker/retry - Restart the subscription now."""
    controller = request.app["controller"]
    result = await controller.retry()
    if not result["success"]:
        return create_error_response("NOT_RUNNING", result["error"], status=409)
    return web.json_response(result)


async def start_handler(request: web.Request) -> web.Response:
    """POST /api/v1/tracker/start - Start tracking."""
    controller = request.app["controller"]
    return web.json_response(await controller.start_tracking())


async def stop_handler(request: web.Request) -> web.Response:
    """POST /api/v1/tracker/stop - Stop tracking and release the sensor."""
    controller = request.app["controller"]
    return web.json_response(await controller.stop_tracking())


async def oneshot_handler(request: web.Request) -> web.Response:
    """POST /api/v1/tracker/oneshot - Single position query."""
    controller = request.app["controller"]
    body, _ = await parse_json_body(request, required=False)
    try:
        result = await controller.request_one_shot(body or None)
    except SensorErrorRaised as exc:
        return create_error_response(
            "SENSOR_ERROR",
            str(exc.error),
            status=503,
            details=exc.error.to_dict(),
        )
    return web.json_response(result)


async def visibility_handler(request: web.Request) -> web.Response:
    """PUT /api/v1/tracker/visibility - Report host visibility."""
    controller = request.app["controller"]
    body, error = await parse_json_body(request)
    if error:
        return error
    visible = body["visible"]
    if not isinstance(visible, bool):
        return create_error_response("VALIDATION_ERROR", "'visible' must be a boolean", status=400)
    return web.json_response(await controller.set_visibility(visible))


async def config_handler(request: web.Request) -> web.Response:
    """GET /api/v1/tracker/config - Effective configuration."""
    controller = request.app["controller"]
    return web.json_response(await controller.get_config())


async def update_config_handler(request: web.Request) -> web.Response:
    """PUT /api/v1/tracker/config - Update runtime settings."""
    controller = request.app["controller"]
    body, error = await parse_json_body(request)
    if error:
        return error
    result = await controller.update_config(body)
    return web.json_response(result, status=200 if result.get("success") else 500)
