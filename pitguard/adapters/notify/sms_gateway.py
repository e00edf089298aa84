"""
SMS gateway client for PitGuard.

This module posts alert text to an HTTP SMS gateway.
Transient failures are retried with backoff; a delivery that still
fails is raised as ``DeliverySinkFailure``.
"""

import asyncio
import aiohttp
from typing import Dict, Optional

from pitguard.adapters.notify.log_notifier import format_alert_text
from pitguard.common.retry import retry_with_backoff
from pitguard.core import errors
from pitguard.core.models import AlertItem
from pitguard.observability.logging_setup import get_logger

log = get_logger("pitguard.sms")

class SmsGatewayNotifier:
    """HTTP SMS 게이트웨이 클라이언트"""

    def __init__(self,
                 gateway_url: str,
                 token: str = "",
                 *,
                 default_destination: Optional[str] = None,
                 timeout: int = 5,
                 max_retries: int = 2,
                 base_delay: float = 0.5):
        """
        초기화합니다.

        Args:
            gateway_url: 게이트웨이 발송 URL
            token: 인증 토큰 (Bearer)
            default_destination: 기본 수신 번호
            timeout: 요청 타임아웃 (초)
            max_retries: 최대 재시도 횟수
            base_delay: 재시도 기본 지연 (초)
        """
        if not gateway_url:
            raise errors.InvalidConfig("SMS gateway URL is required")
        self.gateway_url = gateway_url
        self.token = token
        self.default_destination = default_destination
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay

        log.info(f"SMS 게이트웨이 클라이언트 초기화됨 url:{gateway_url}")

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def send(self, alert: AlertItem, destination: Optional[str] = None) -> None:
        """
        경보 문구를 SMS 로 발송합니다.

        Raises:
            DeliverySinkFailure: 수신처가 없거나 재시도 후에도 실패한 경우
        """
        to = destination or self.default_destination
        if not to:
            raise errors.DeliverySinkFailure(f"no destination for alert {alert.id}")

        body = {"to": to, "body": format_alert_text(alert), "reference": alert.id}

        async def _post():
            async with aiohttp.ClientSession(
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as session:
                async with session.post(self.gateway_url, json=body) as response:
                    response.raise_for_status()

        try:
            await retry_with_backoff(_post, max_retries=self.max_retries, base_delay=self.base_delay)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise errors.DeliverySinkFailure(f"SMS delivery failed for alert {alert.id}: {e}") from e
        log.info(f"SMS 발송 완료 alert:{alert.id} to:{to}")
