"""
Builders for the GitHub payloads the bot reads, and a recording transport.
"""

import json
from datetime import datetime, timedelta, timezone

import httpx


BOT_NAME = "concierge-bot"
REPO = "org/repo"
API = "https://api.github.com"


def iso_days_ago(days, hours=0):
    moment = datetime.now(timezone.utc) - timedelta(days=days, hours=hours)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def pull_request_json(number=1, updated_days_ago=40, login="contributor"):
    base = f"{API}/repos/{REPO}"
    return {
        "id": 1000 + number,
        "number": number,
        "url": f"{base}/pulls/{number}",
        "comments_url": f"{base}/issues/{number}/comments",
        "commits_url": f"{base}/pulls/{number}/commits",
        "updated_at": iso_days_ago(updated_days_ago),
        "user": {"login": login},
        "state": "open",
    }


def comment_json(body, days_ago, login="reviewer"):
    return {"body": body, "user": {"login": login}, "updated_at": iso_days_ago(days_ago)}


def commit_json(days_ago):
    return {"commit": {"author": {"date": iso_days_ago(days_ago)}}}


class Recorder:
    """
    Route table for httpx.MockTransport that remembers every request.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, url, status=200, body=None, headers=None):
        self.routes[(method, url)] = (status, body, headers or {})

    def posts(self):
        return [r for r in self.requests if r.method == "POST"]

    def __call__(self, request):
        self.requests.append(request)
        key = (request.method, str(request.url))
        if key not in self.routes:
            return httpx.Response(404, json={"message": "Not Found"})
        status, body, headers = self.routes[key]
        if body is None:
            return httpx.Response(status, headers=headers)
        return httpx.Response(status, content=json.dumps(body), headers={
            "content-type": "application/json",
            **headers,
        })


