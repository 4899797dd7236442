"""
Queue message bodies for the campaign pipeline.

CampaignerTopicParams starts a campaign on the campaigner queue; the
campaigner fans it out into one SenderTopicParams per subscriber on the
sender queue. Both travel as JSON objects.
"""

from dataclasses import dataclass, field, asdict, fields
from typing import Any, Dict, List


@dataclass
class SesKeysParams:
    access_key: str
    secret_key: str
    region: str


def _build(cls, data: Dict[str, Any]):
    if not isinstance(data, dict):
        raise TypeError(f"{cls.__name__} expects a JSON object")
    known = {f.name for f in fields(cls)}
    values = {k: v for k, v in data.items() if k in known}
    if isinstance(values.get('ses_keys'), dict):
        values['ses_keys'] = SesKeysParams(**values['ses_keys'])
    return cls(**values)


@dataclass
class CampaignerTopicParams:
    campaign_id: int
    user_id: int
    user_uuid: str
    event_id: str
    source: str
    ses_keys: SesKeysParams
    segment_ids: List[int] = field(default_factory=list)
    template_data: Dict[str, Any] = field(default_factory=dict)
    configuration_set_exists: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CampaignerTopicParams':
        return _build(cls, data)


@dataclass
class SenderTopicParams:
    event_id: str
    subscriber_id: int
    subscriber_email: str
    source: str
    configuration_set_exists: bool
    campaign_id: int
    ses_keys: SesKeysParams
    html_part: str
    subject_part: str
    text_part: str
    user_uuid: str
    user_id: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SenderTopicParams':
        return _build(cls, data)
