# backend/trailwander/maps.py
from __future__ import annotations

import logging
from typing import Any, List, Optional

import requests
from flask import Blueprint, current_app, jsonify, request

from .config_loader import get_nominatim_settings
from .errors import BadRequestError, GeocodingError

log = logging.getLogger(__name__)

bp = Blueprint("maps", __name__, url_prefix="/trails")

# shared connection pool for every request thread
_http_session = requests.Session()


def _session() -> requests.Session:
    return _http_session


def search_trail_by_name(
    trail_name: str,
    state: str = "",
    *,
    url: Optional[str] = None,
    user_agent: Optional[str] = None,
    timeout: int = 15,
) -> List[Any]:
    """
    Ask OpenStreetMap Nominatim for places matching a trail name (and state).

    Returns the decoded JSON list as Nominatim sends it. Network errors,
    non-2xx replies and non-JSON bodies raise GeocodingError.
    """
    default_url, default_agent = get_nominatim_settings()
    query = " ".join(part for part in (trail_name.strip(), (state or "").strip()) if part)
    params = {"q": query, "format": "json", "addressdetails": 1}
    headers = {
        "Accept": "application/json",
        "User-Agent": user_agent or default_agent,
    }
    try:
        response = _session().get(url or default_url, params=params, headers=headers, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as e:
        log.warning("Nominatim lookup failed for %r: %s", query, e)
        raise GeocodingError() from e
    except ValueError as e:
        log.warning("Nominatim returned a non-JSON body for %r", query)
        raise GeocodingError() from e
    if not isinstance(data, list):
        raise GeocodingError("Unexpected map lookup response")
    return data


@bp.route("/map", methods=["POST"])
def map_lookup_api():
    """
    POST /trails/map
    JSON body: {"trailName": "Blue Trail", "state": "AL"}
    Response:  {"resp": [ ...nominatim results... ]}
    """
    data = request.get_json(silent=True) or {}
    trail_name = data.get("trailName")
    if not isinstance(trail_name, str) or not trail_name.strip():
        raise BadRequestError("Missing 'trailName'.")
    state = data.get("state") if isinstance(data.get("state"), str) else ""
    cfg = current_app.config
    resp = search_trail_by_name(
        trail_name,
        state,
        url=cfg.get("NOMINATIM_URL"),
        user_agent=cfg.get("NOMINATIM_USER_AGENT"),
    )
    return jsonify(resp=resp)
