"""
📣 LEADFLOW PIPELINES
=====================
Batch jobs that move many contacts at once.

Usage:
    from pipelines import CampaignActivationPipeline

    pipeline = CampaignActivationPipeline()
    result = pipeline.activate(campaign_id)
"""

from .campaign_activation import CampaignActivationPipeline
from .segment_resolver import SegmentResolver

__all__ = [
    "CampaignActivationPipeline",
    "SegmentResolver",
]
