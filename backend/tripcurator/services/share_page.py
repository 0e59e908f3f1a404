import logging
import os
from jinja2 import Environment, FileSystemLoader, select_autoescape
from tripcurator.models import Trip

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")

_env = Environment(loader=FileSystemLoader(TEMPLATES_DIR), autoescape=select_autoescape(["html"]))


def public_trip_data(trip: Trip) -> dict:
    """Sanitised view of a trip for anonymous readers: no user ids, no raw transcriptions."""
    return {
        "id": trip.id,
        "title": trip.title,
        "description": trip.description,
        "created_by": trip.user.name if trip.user else None,
        "locations": [
            {
                "id": loc.id,
                "name": loc.name,
                "address": loc.address,
                "latitude": loc.latitude,
                "longitude": loc.longitude,
                "source_url": loc.source_url,
                "url_title": loc.url_title,
                "url_description": loc.url_description,
                "url_image": loc.url_image,
                "user_image": loc.user_image,
                "phone": loc.phone,
                "hours": loc.hours,
                "price_range": loc.price_range,
                "rating": loc.rating,
                "cuisine": loc.cuisine,
                "reservation_url": loc.reservation_url,
                "polished_description": loc.polished_description,
                "google_rating": loc.google_rating,
                "order_index": loc.order_index,
                "tags": [{"id": t.id, "name": t.name, "category": t.category} for t in loc.tags],
            }
            for loc in trip.locations
        ],
    }


def render_shared_trip_html(trip: Trip) -> str:
    """Render the read-only page for a shared trip."""
    template = _env.get_template("shared_trip.html")
    return template.render(trip=public_trip_data(trip))


def render_not_found_html() -> str:
    return _env.get_template("shared_trip.html").render(trip=None)
