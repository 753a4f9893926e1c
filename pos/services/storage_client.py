"""HTTP client for the Order Storage API, used by the edit sessions."""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import requests

from pos.exceptions import StorageAPIError

logger = logging.getLogger(__name__)


def _jsonable(value):
    """Money leaves the client as decimal strings."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items() if not str(k).startswith('_')}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class StorageClient:
    """Cliente para la API de almacenamiento de pedidos (tenant-scoped)."""

    def __init__(
        self,
        base_url: str,
        tenant_id: int,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        tenant_header: str = 'X-Tenant-ID'
    ):
        """
        Args:
            base_url: API root, e.g. http://localhost:5000
            tenant_id: Tenant every request is scoped to
            timeout: Seconds per request; None keeps the transport default
            session: Optional requests.Session (custom adapters, retries)
        """
        self.base_url = base_url.rstrip('/')
        self.tenant_id = tenant_id
        self.timeout = timeout
        self.http = session or requests.Session()
        self.headers = {
            tenant_header: str(tenant_id),
            'Content-Type': 'application/json',
        }

    @classmethod
    def from_config(cls, config, tenant_id: int, session: Optional[requests.Session] = None) -> 'StorageClient':
        return cls(
            config['STORAGE_API_URL'],
            tenant_id,
            timeout=config.get('STORAGE_API_TIMEOUT'),
            session=session,
            tenant_header=config.get('TENANT_HEADER', 'X-Tenant-ID')
        )

    def _request(self, method: str, path: str, payload: Any = None, params: Optional[Dict[str, Any]] = None):
        url = f"{self.base_url}{path}"
        logger.debug(f"[STORAGE] {method} {path}")

        try:
            response = self.http.request(
                method,
                url,
                json=_jsonable(payload) if payload is not None else None,
                params=params,
                headers=self.headers,
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else 502
            message = self._error_message(e.response) or str(e)
            logger.error(f"[STORAGE] {method} {path} failed with {status}: {message}")
            raise StorageAPIError(message, status_code=status, method=method, url=url) from e
        except requests.RequestException as e:
            logger.error(f"[STORAGE] {method} {path} unreachable: {str(e)}")
            raise StorageAPIError(f'No se pudo conectar con el servidor: {e}', method=method, url=url) from e

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_message(response) -> Optional[str]:
        if response is None:
            return None
        try:
            body = response.json()
        except ValueError:
            return response.text or None
        if isinstance(body, dict):
            return body.get('message') or body.get('error')
        return None

    # Catalog / configuration

    def get_store_config(self) -> Dict[str, Any]:
        return self._request('GET', '/store-settings')

    def get_product(self, product_id: int) -> Dict[str, Any]:
        return self._request('GET', f'/products/{product_id}')

    # Orders

    def create_order(self, order: Dict[str, Any], items: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request('POST', '/orders', {'order': order, 'items': items})

    def get_order(self, order_id: int) -> Dict[str, Any]:
        return self._request('GET', f'/orders/{order_id}')

    def get_order_items(self, order_id: int) -> List[Dict[str, Any]]:
        return self._request('GET', f'/orders/{order_id}/items')

    def add_order_items(self, order_id: int, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request('POST', f'/orders/{order_id}/items', {'items': items})

    def update_order_item(self, item_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('PUT', f'/order-items/{item_id}', fields)

    def delete_order_item(self, item_id: int) -> Dict[str, Any]:
        return self._request('DELETE', f'/order-items/{item_id}')

    def update_order(self, order_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('PUT', f'/orders/{order_id}', fields)

    def recalculate_order(self, order_id: int) -> Dict[str, Any]:
        return self._request('POST', f'/orders/{order_id}/recalculate')

    def reconcile_order(self, order_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Single-transaction save of a whole edit."""
        return self._request('PUT', f'/orders/{order_id}/reconcile', payload)

    # Purchase receipts

    def get_receipt(self, receipt_id: int) -> Dict[str, Any]:
        return self._request('GET', f'/purchase-receipts/{receipt_id}')

    def get_receipt_items(self, receipt_id: int) -> List[Dict[str, Any]]:
        return self._request('GET', f'/purchase-receipts/{receipt_id}/items')

    def update_receipt(self, receipt_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('PUT', f'/purchase-receipts/{receipt_id}', fields)

    def add_receipt_item(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('POST', '/purchase-order-items', item)

    def delete_receipt_item(self, item_id: int) -> Any:
        return self._request('DELETE', f'/purchase-order-items/{item_id}')

    def replace_receipt_items(self, receipt_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Single-transaction replace of every receipt line."""
        return self._request('PUT', f'/purchase-receipts/{receipt_id}/items', payload)
