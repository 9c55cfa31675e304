"""
Python client for interacting with the Redmine REST API.

This package provides a :class:`Redmine` class that sends
authenticated requests to a Redmine server, in JSON or XML, and
reports each outcome exactly once through a ``callback(error, data)``
function and the returned :class:`concurrent.futures.Future`.

Examples
--------

```python
from redmine_api_client import Redmine

redmine = Redmine("redmine.example.com", {"apiKey": "YOUR_API_KEY"})

def done(err, data):
    if err:
        raise SystemExit(str(err))
    for issue in data["issues"]:
        print(issue["id"], issue["subject"])

redmine.issues({"project_id": 1, "limit": 25}, done)

# or block on the result
issue = redmine.get_issue_by_id(42).result()
```

Errors
------
Bad settings raise :class:`ConfigurationError` from the constructor
and bad call arguments raise :class:`ValidationError` before anything
is sent.  Everything that goes wrong once a request is under way
(:class:`ApiError`, :class:`TransportError`,
:class:`MalformedResponseError`) is passed to the callback instead.

See Also
--------
https://www.redmine.org/projects/redmine/wiki/Rest_api describes the
available resources and how to enable the REST web service and
obtain an API key.
"""

from .client import Redmine, RedmineConfig, encode_url
from .exceptions import (
    ApiError,
    ConfigurationError,
    MalformedResponseError,
    RedmineError,
    TransportError,
    ValidationError,
)

__all__ = [
    "Redmine",
    "RedmineConfig",
    "encode_url",
    "RedmineError",
    "ConfigurationError",
    "ValidationError",
    "ApiError",
    "TransportError",
    "MalformedResponseError",
]
