"""
Sender-domain authentication check via DNS TXT records.

Reports whether SPF and DMARC policies are published, not whether a message
passed them. The two lookups are independent: one failing never hides the
other's result.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

import dns.exception
import dns.resolver

from phishscan.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainAuth:
    spf: bool = False
    dmarc: bool = False

    def to_dict(self):
        return {'spf': self.spf, 'dmarc': self.dmarc}


class DomainAuthChecker:
    def __init__(self, timeout: Optional[float] = None,
                 resolver: Optional[dns.resolver.Resolver] = None):
        self.timeout = timeout if timeout is not None else settings.DNS_TIMEOUT
        # Built on first lookup: reading the system resolver config can fail
        self._resolver = resolver

    @property
    def resolver(self) -> dns.resolver.Resolver:
        if self._resolver is None:
            self._resolver = dns.resolver.Resolver()
        self._resolver.lifetime = self.timeout
        return self._resolver

    async def check(self, domain: str) -> DomainAuth:
        """Run the SPF and DMARC lookups concurrently off the event loop."""
        domain = (domain or '').strip().lower().rstrip('.')
        if not domain:
            return DomainAuth()

        spf, dmarc = await asyncio.gather(
            asyncio.to_thread(self.has_spf, domain),
            asyncio.to_thread(self.has_dmarc, domain),
        )
        return DomainAuth(spf=spf, dmarc=dmarc)

    def has_spf(self, domain: str) -> bool:
        return any(txt.lower().startswith('v=spf1') for txt in self._txt_records(domain))

    def has_dmarc(self, domain: str) -> bool:
        return any(txt.lower().startswith('v=dmarc1') for txt in self._txt_records(f'_dmarc.{domain}'))

    def _txt_records(self, name: str) -> List[str]:
        """TXT strings published at `name`; empty on any DNS failure."""
        try:
            answers = self.resolver.resolve(name, 'TXT', lifetime=self.timeout)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer, dns.resolver.NoNameservers):
            return []
        except dns.exception.DNSException as e:
            logger.debug(f"TXT lookup for {name} failed: {e}")
            return []
        except Exception as e:
            logger.error(f"❌ Unexpected error resolving TXT for {name}: {e}")
            return []

        records = []
        for rdata in answers:
            if hasattr(rdata, 'strings'):
                records.append(b''.join(rdata.strings).decode('utf-8', 'ignore'))
            else:
                records.append(str(rdata))
        return records
