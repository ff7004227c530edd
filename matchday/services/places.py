"""Google Places text search used when a team picks its home location."""
import logging

import requests
from matchday.errors import Timeout

logger = logging.getLogger(__name__)

_TEXT_SEARCH_URL = 'https://maps.googleapis.com/maps/api/place/textsearch/json'


class PlacesClient:
    def __init__(self, api_key, timeout=5.0, session=None):
        self.api_key = api_key or ''
        self.timeout = float(timeout)
        self.session = session or requests.Session()

    @property
    def configured(self):
        return bool(self.api_key)

    def text_search(self, query):
        """Best match for ``query`` as a place dict, or None."""
        if not self.configured or not str(query or '').strip():
            return None
        try:
            response = self.session.get(
                _TEXT_SEARCH_URL,
                params={'query': query, 'key': self.api_key},
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise Timeout('The places service took too long to respond') from exc
        except requests.RequestException as exc:
            logger.warning('Places lookup failed: %s', exc)
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning('Places lookup returned a non-JSON body (HTTP %s)', response.status_code)
            return None

        results = payload.get('results') or []
        if payload.get('status') != 'OK' or not results:
            logger.info('Places lookup found nothing: %s %s',
                        payload.get('status'), payload.get('error_message', ''))
            return None

        best = results[0]
        location = (best.get('geometry') or {}).get('location') or {}
        return {
            'place_id': best.get('place_id', ''),
            'name': best.get('name', ''),
            'formatted_address': best.get('formatted_address', ''),
            'lat': location.get('lat'),
            'lng': location.get('lng'),
        }
