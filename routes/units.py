import logging

import azure.functions as func

from routes.images import error_response
from services import image_set_service as iss
from services import unit_service as us
from services.errors import ImageSetError, InvalidInput, NotFound
from services.image_set_service import positive_int
from utils.cors import cors_response, json_response
from utils.sanitize import sanitize_vin

logger = logging.getLogger(__name__)
bp = func.Blueprint()


def handle_unit_images(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return cors_response(status=204)
    try:
        try:
            unit_id = positive_int(req.route_params.get("id"), "UnitID")
        except InvalidInput:
            raise InvalidInput("Invalid UnitID format. Must be a positive number.") from None

        vin = us.lookup_vin(unit_id)
        if not vin:
            raise NotFound("Unit not found")
        vin = sanitize_vin(vin)
        if not vin:
            raise InvalidInput("Invalid VIN for unit")

        return json_response({"success": True, "vin": vin, "images": iss.list_entries(vin)})
    except ImageSetError as e:
        return error_response(e)
    except Exception as e:
        logger.exception("units/%s/images failed", req.route_params.get("id"))
        return json_response({"success": False, "error": str(e) or "Internal Server Error"}, 500)


@bp.function_name(name="UnitImages")
@bp.route(route="units/{id}/images", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def unit_images(req: func.HttpRequest) -> func.HttpResponse:
    return handle_unit_images(req)
