"""
HTTP client for the drawing lab server
"""
import logging
from typing import Dict, List, Optional

import requests

from .session_store import ClientSession
from .timed_test import TimedTest

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx reply; carries the server's ``error`` message and status"""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[Dict] = None):
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(message)


class DrawLabClient:
    def __init__(self, base_url: str, timeout: float = 150.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': 'drawlab-client'})

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _handle(self, response) -> Dict:
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.ok:
            message = data.get('error') if isinstance(data, dict) else None
            raise ApiError(message or f'HTTP {response.status_code}', response.status_code,
                           data if isinstance(data, dict) else None)
        return data

    def _post(self, path: str, body: Dict) -> Dict:
        try:
            response = self.session.post(self._url(path), json=body, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Request to {path} failed: {e}")
            raise ApiError(f'Request failed: {e}')
        return self._handle(response)

    def _get(self, path: str, params: Optional[Dict] = None):
        try:
            response = self.session.get(self._url(path), params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Request to {path} failed: {e}")
            raise ApiError(f'Request failed: {e}')
        return response

    # ------------------------------------------------------------------
    # functions

    def evaluate_drawing(self, user_drawing: str, reference_image: str, drawing_type: str) -> Dict:
        return self._post('/functions/evaluate-drawing', {
            'userDrawing': user_drawing,
            'referenceImage': reference_image,
            'drawingType': drawing_type,
        })

    def student_auth(self, action: str, **fields) -> Dict:
        body = {'action': action}
        body.update(fields)
        return self._post('/functions/student-auth', body)

    def admin(self, action: str, admin_token: Optional[str] = None, **fields) -> Dict:
        body = {'action': action}
        if admin_token:
            body['adminToken'] = admin_token
        body.update(fields)
        return self._post('/functions/admin-api', body)

    def add_points(self, session_token: str, score: float) -> Dict:
        return self.student_auth('add_points', sessionToken=session_token, score=score)

    # ------------------------------------------------------------------
    # local session

    def verify_session(self, store) -> ClientSession:
        """Check the stored token with the server; an invalid one is forgotten"""
        session = store.load()
        if not session.session_token:
            return session

        try:
            data = self.student_auth('verify', sessionToken=session.session_token)
        except ApiError as e:
            if e.status_code is None or e.status_code >= 500:
                # サーバーに届かない場合は保存内容を残し、未ログインとして扱う
                logger.error(f"Session verification error: {e}")
                return ClientSession(anonymous_id=session.anonymous_id)
            data = {'valid': False}

        if not data.get('valid'):
            logger.info("Stored session is no longer valid; clearing it")
            return store.clear()
        return store.login(session.session_token, data.get('email'), data.get('branch'))

    def logout(self, store) -> ClientSession:
        """Tell the server, then forget the local session either way"""
        session = store.load()
        if session.session_token:
            try:
                self.student_auth('logout', sessionToken=session.session_token)
            except ApiError as e:
                logger.error(f"Logout error: {e}")
        return store.clear()

    # ------------------------------------------------------------------
    # tables

    def list_content(self, semester: Optional[int] = None, drawing_type: Optional[str] = None,
                     content_type: Optional[str] = None) -> List[Dict]:
        params = {k: v for k, v in (('semester', semester), ('drawing_type', drawing_type),
                                    ('content_type', content_type)) if v is not None}
        return self._handle(self._get('/api/content', params)).get('content', [])

    def list_videos(self, drawing_type: str) -> List[Dict]:
        return self.list_content(drawing_type=drawing_type, content_type='video')

    def save_history(self, item: Dict) -> int:
        return self._post('/api/test-history', item).get('id')

    def list_history(self, user_identifier: str, limit: int = 50) -> List[Dict]:
        response = self._get('/api/test-history', {'userIdentifier': user_identifier, 'limit': limit})
        return self._handle(response).get('history', [])

    def download_export(self, history_id: int) -> Dict:
        return self._handle(self._get(f'/api/test-history/{history_id}/export'))

    # ------------------------------------------------------------------

    def new_timed_test(self, store, drawing_type: str, notify=None, alarm=None) -> TimedTest:
        """Timed test wired to this server and the verified local session"""
        session = self.verify_session(store)
        award_points = None
        if session.session_token:
            def award_points(score):
                return self.add_points(session.session_token, score)
        return TimedTest(
            drawing_type,
            evaluate=self.evaluate_drawing,
            user_identifier=store.user_identifier(),
            persist=self.save_history,
            award_points=award_points,
            fetch_videos=self.list_videos,
            notify=notify,
            alarm=alarm,
        )
