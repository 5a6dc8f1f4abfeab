# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Candidate loading for recipient and volunteer matching.
"""

import logging
from datetime import date
from typing import List, Optional

from opentelemetry import trace

from domain import authorization as authz
from domain import matching as scorer
from models.entities import Actor, ActorContext
from models.enums import ActorRole
from .records import load_donation, require
from .store import ACTORS, DocumentStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class MatchingService:
    """Rank recipient organizations for a donation and volunteers for a day."""

    def __init__(
        self,
        store: DocumentStore,
        top_k: int = scorer.DEFAULT_TOP_K,
        distance_fn: Optional[scorer.DistanceFn] = None,
    ):
        self.store = store
        self.top_k = top_k
        self.distance_fn = distance_fn

    def _candidates(self, role: ActorRole) -> List[Actor]:
        documents = self.store.find(ACTORS, {"role": role, "isActive": True, "isVerified": True})
        return [Actor.from_document(document) for document in documents]

    def match_recipients(self, actor: ActorContext, donation_id: str) -> List[scorer.ScoredCandidate]:
        """
        Best recipient organizations for a donation.

        Only the donation's owner or an admin may ask.
        """
        with tracer.start_as_current_span("matching.recipients") as span:
            span.set_attribute("donation.id", donation_id)
            donation = load_donation(self.store, donation_id)
            require(authz.can_match_donation(actor, donation))

            ranked = scorer.rank_recipients(
                self._candidates(ActorRole.RECIPIENT_ORG),
                top_k=self.top_k,
                distance_fn=self.distance_fn,
                origin=donation.pickup_location,
            )
            span.set_attribute("matching.results", len(ranked))
            logger.info(
                "Recipients matched",
                extra={"extra_fields": {"donation_id": donation_id, "matches": len(ranked)}}
            )
            return ranked

    def available_volunteers(self, actor: ActorContext, day: date) -> List[scorer.ScoredCandidate]:
        """Volunteers available on the weekday of ``day``, best first."""
        with tracer.start_as_current_span("matching.volunteers") as span:
            span.set_attribute("matching.date", day.isoformat())
            require(authz.check_role(actor, [ActorRole.ADMIN]))
            ranked = scorer.rank_volunteers(
                self._candidates(ActorRole.VOLUNTEER),
                day,
                distance_fn=self.distance_fn,
            )
            span.set_attribute("matching.results", len(ranked))
            return ranked
