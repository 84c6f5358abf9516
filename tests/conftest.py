"""Shared fixtures: a small datafile exercising segments, traffic and force."""

import pytest

from flagcore.datafile import DatafileReader
from flagcore.evaluate import EvaluationOptions


@pytest.fixture
def datafile_data():
    """Raw datafile content."""
    return {
        "schemaVersion": "1",
        "revision": "42",
        "segments": [
            {
                "key": "netherlands",
                "conditions": [{"attribute": "country", "operator": "equals", "value": "nl"}],
            },
            {
                "key": "germany",
                "conditions": '[{"attribute": "country", "operator": "equals", "value": "de"}]',
            },
            {
                "key": "mobile",
                "conditions": {"and": [{"attribute": "device", "operator": "equals", "value": "mobile"}]},
            },
            {
                "key": "internal",
                "conditions": {"attribute": "email", "operator": "endsWith", "value": "@internal.com"},
            },
        ],
        "features": [
            {
                "key": "checkout",
                "bucketBy": "userId",
                "variablesSchema": [
                    {"key": "title", "type": "string", "defaultValue": "Welcome"},
                    {"key": "color", "type": "string", "defaultValue": "blue"},
                    {"key": "config", "type": "json", "defaultValue": '{"steps": 3}'},
                ],
                "variations": [
                    {"value": "control", "weight": 50},
                    {
                        "value": "treatment",
                        "weight": 50,
                        "variables": [
                            {
                                "key": "title",
                                "value": "Try it",
                                "overrides": [
                                    {"segments": "mobile", "value": "Try it on mobile"},
                                ],
                            },
                            {"key": "config", "value": '{"steps": 1}'},
                        ],
                    },
                ],
                "force": [
                    {
                        "conditions": {"attribute": "email", "operator": "endsWith", "value": "@internal.com"},
                        "enabled": False,
                    },
                    {
                        "conditions": [{"attribute": "userId", "operator": "equals", "value": "vip"}],
                        "enabled": True,
                        "variation": "treatment",
                        "variables": {"color": "gold"},
                    },
                ],
                "traffic": [
                    {
                        "key": "dutch",
                        "segments": '["netherlands"]',
                        "allocation": [
                            {"variation": "control", "range": [0, 49999]},
                            {"variation": "treatment", "range": [50000, 99999]},
                        ],
                    },
                    {
                        "key": "everyone",
                        "segments": "*",
                        "allocation": [{"variation": "control", "range": [0, 9999]}],
                        "variables": {"color": "green"},
                    },
                ],
            },
            {
                "key": "banner",
                "bucketBy": {"or": ["userId", "deviceId"]},
                "traffic": [
                    {"key": "german", "segments": "germany", "enabled": False},
                    {"key": "all", "segments": "*", "allocation": [{"range": [0, 99999]}]},
                ],
            },
            {
                "key": "new-ui",
                "bucketBy": ["userId", "country"],
                "required": ["checkout"],
                "traffic": [
                    {"key": "all", "segments": "*", "allocation": [{"range": [0, 99999]}]},
                ],
            },
        ],
    }


@pytest.fixture
def reader(datafile_data):
    """Parsed datafile."""
    return DatafileReader.from_dict(datafile_data)


@pytest.fixture
def pinned():
    """Build evaluation options that pin the bucket value."""
    def _pinned(bucket_value):
        return EvaluationOptions(configure_bucket_value=lambda feature, context, value: bucket_value)
    return _pinned
