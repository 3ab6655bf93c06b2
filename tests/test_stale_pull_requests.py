import asyncio
import json

import pytest

from concierge.config.repositories import build_repository_settings
from concierge.stale.notifier import PostResult, Skipped
from concierge.workers.stale_pull_requests import (
    comments_url,
    pull_requests_url,
    stale_pull_requests,
)
from concierge.github.models import PullRequestRecord, parse_record

from helpers import API, REPO, comment_json, commit_json, pull_request_json


PULLS = f"{API}/repos/{REPO}/pulls?state=open"


def serve_pull_request(recorder, pr_json, comments, commits):
    record = parse_record(PullRequestRecord, pr_json)
    recorder.add("GET", comments_url(record), body=comments)
    recorder.add("GET", pr_json["commits_url"], body=commits)
    recorder.add("POST", pr_json["comments_url"], status=201, body={"id": 1})


def run_scan(make_context, repositories=None):
    async def main():
        ctx = make_context(repositories)
        async with ctx.http:
            return await stale_pull_requests(ctx)

    return asyncio.run(main())


def test_pull_requests_url(repository_settings):
    assert pull_requests_url(repository_settings) == PULLS

    scoped = build_repository_settings(REPO, {"gitHubToken": "t", "staleBaseBranch": "main"})
    assert pull_requests_url(scoped) == f"{PULLS}&base=main"


def test_stale_pull_request_gets_exactly_one_bump(make_context, recorder):
    pr_json = pull_request_json(login="octocat")
    recorder.add("GET", PULLS, body=[pr_json])
    serve_pull_request(recorder, pr_json, [comment_json("any news?", 31)], [commit_json(45)])

    summary = run_scan(make_context)

    posts = recorder.posts()
    assert len(posts) == 1
    assert str(posts[0].url) == pr_json["comments_url"]
    body = json.loads(posts[0].read())["body"]
    assert "@octocat" in body
    assert isinstance(summary[REPO][0], PostResult)


def test_recent_commit_prevents_bump(make_context, recorder):
    pr_json = pull_request_json(login="octocat")
    recorder.add("GET", PULLS, body=[pr_json])
    serve_pull_request(recorder, pr_json, [comment_json("any news?", 31)], [commit_json(45), commit_json(1)])

    summary = run_scan(make_context)

    assert recorder.posts() == []
    assert isinstance(summary[REPO][0], Skipped)


def test_stop_comment_prevents_bump(make_context, recorder):
    pr_json = pull_request_json()
    recorder.add("GET", PULLS, body=[pr_json])
    serve_pull_request(recorder, pr_json, [comment_json("@concierge-bot stop", 90)], [commit_json(90)])

    run_scan(make_context)

    assert recorder.posts() == []


def test_pull_requests_processed_across_pages_in_order(make_context, recorder):
    first = pull_request_json(number=1)
    second = pull_request_json(number=2)
    page_2 = f"{PULLS}&page=2"
    recorder.add("GET", PULLS, body=[first], headers={"link": f'<{page_2}>; rel="next", <{page_2}>; rel="last"'})
    recorder.add("GET", page_2, body=[second])
    for pr_json in (first, second):
        serve_pull_request(recorder, pr_json, [comment_json("ping", 40)], [commit_json(40)])

    run_scan(make_context)

    assert [str(post.url) for post in recorder.posts()] == [
        first["comments_url"],
        second["comments_url"],
    ]


def test_failing_pull_request_does_not_stop_siblings(make_context, recorder):
    broken = pull_request_json(number=1)
    healthy = pull_request_json(number=2)
    recorder.add("GET", PULLS, body=[broken, healthy])
    serve_pull_request(recorder, broken, [], [])  # no commits
    serve_pull_request(recorder, healthy, [comment_json("ping", 40)], [commit_json(40)])

    summary = run_scan(make_context)

    assert [str(post.url) for post in recorder.posts()] == [healthy["comments_url"]]
    assert summary[REPO][0] == Skipped("data integrity")


def test_upstream_error_on_comments_is_isolated(make_context, recorder):
    broken = pull_request_json(number=1)
    healthy = pull_request_json(number=2)
    recorder.add("GET", PULLS, body=[broken, healthy])
    serve_pull_request(recorder, broken, [], [commit_json(40)])
    recorder.add("GET", comments_url(parse_record(PullRequestRecord, broken)), status=500, body={})
    serve_pull_request(recorder, healthy, [comment_json("ping", 40)], [commit_json(40)])

    summary = run_scan(make_context)

    assert len(recorder.posts()) == 1
    assert summary[REPO][0] == Skipped("upstream error 500")


def test_failing_repository_does_not_stop_others(make_context, recorder, repository_settings):
    other = build_repository_settings("org/other", {"gitHubToken": "t2"})
    recorder.add("GET", f"{API}/repos/org/other/pulls?state=open", status=401, body={})
    pr_json = pull_request_json()
    recorder.add("GET", PULLS, body=[pr_json])
    serve_pull_request(recorder, pr_json, [comment_json("ping", 40)], [commit_json(40)])

    summary = run_scan(make_context, {"org/other": other, REPO: repository_settings})

    assert "org/other" not in summary
    assert len(recorder.posts()) == 1


def test_disabled_repository_is_skipped(make_context, recorder):
    disabled = build_repository_settings(REPO, {"gitHubToken": "t", "bumpStalePullRequests": False})

    summary = run_scan(make_context, {REPO: disabled})

    assert summary == {}
    assert recorder.requests == []


def test_last_page_comment_strategy(make_context, recorder):
    settings = build_repository_settings(REPO, {"gitHubToken": "t", "commentFetch": "last"})
    pr_json = pull_request_json()
    record = parse_record(PullRequestRecord, pr_json)
    first_page = comments_url(record)
    last_page = f"{first_page}&page=5"
    recorder.add("GET", PULLS, body=[pr_json])
    recorder.add("GET", first_page, body=[comment_json("old", 90)],
                 headers={"link": f'<{first_page}&page=2>; rel="next", <{last_page}>; rel="last"'})
    recorder.add("GET", last_page, body=[comment_json("recent", 2)])
    recorder.add("GET", pr_json["commits_url"], body=[commit_json(90)])

    summary = run_scan(make_context, {REPO: settings})

    assert recorder.posts() == []
    assert summary[REPO][0] == Skipped("recently updated")


def serve_two_comment_pages(recorder, pr_json, first_page_comments, last_page_comments):
    first_page = comments_url(parse_record(PullRequestRecord, pr_json))
    second_page = f"{first_page}&page=2"
    recorder.add("GET", first_page, body=first_page_comments,
                 headers={"link": f'<{second_page}>; rel="next", <{second_page}>; rel="last"'})
    recorder.add("GET", second_page, body=last_page_comments)


@pytest.mark.parametrize("strategy", ["all", "last"])
def test_stop_comment_on_earlier_page_is_honoured(make_context, recorder, strategy):
    settings = build_repository_settings(REPO, {"gitHubToken": "t", "commentFetch": strategy})
    pr_json = pull_request_json()
    recorder.add("GET", PULLS, body=[pr_json])
    serve_pull_request(recorder, pr_json, [], [commit_json(90)])
    serve_two_comment_pages(
        recorder,
        pr_json,
        [comment_json("@concierge-bot stop", 60)],
        [comment_json("still waiting", 40)],
    )

    summary = run_scan(make_context, {REPO: settings})

    assert recorder.posts() == []
    assert summary[REPO] == [Skipped("stop requested")]


@pytest.mark.parametrize("strategy", ["all", "last"])
def test_comment_strategies_agree_on_recent_activity(make_context, recorder, strategy):
    settings = build_repository_settings(REPO, {"gitHubToken": "t", "commentFetch": strategy})
    pr_json = pull_request_json()
    recorder.add("GET", PULLS, body=[pr_json])
    serve_pull_request(recorder, pr_json, [], [commit_json(90)])
    serve_two_comment_pages(
        recorder,
        pr_json,
        [comment_json("@concierge-bot stop", 60)],
        [comment_json("rebased", 3)],
    )

    summary = run_scan(make_context, {REPO: settings})

    assert recorder.posts() == []
    assert summary[REPO] == [Skipped("recently updated")]


def test_last_page_strategy_bumps_without_stop(make_context, recorder):
    settings = build_repository_settings(REPO, {"gitHubToken": "t", "commentFetch": "last"})
    pr_json = pull_request_json()
    recorder.add("GET", PULLS, body=[pr_json])
    serve_pull_request(recorder, pr_json, [], [commit_json(90)])
    serve_two_comment_pages(recorder, pr_json, [comment_json("first", 60)], [comment_json("any news?", 40)])

    summary = run_scan(make_context, {REPO: settings})

    assert len(recorder.posts()) == 1
    assert isinstance(summary[REPO][0], PostResult)


def test_broken_template_does_not_stop_other_repositories(make_context, recorder, repository_settings):
    broken = build_repository_settings("org/bad", {
        "gitHubToken": "t2",
        "stalePullRequestTemplate": "hi {{ pull_request.title }}",
    })
    bad_pr = pull_request_json(number=5)
    recorder.add("GET", f"{API}/repos/org/bad/pulls?state=open", body=[bad_pr])
    serve_pull_request(recorder, bad_pr, [comment_json("ping", 40)], [commit_json(40)])
    pr_json = pull_request_json()
    recorder.add("GET", PULLS, body=[pr_json])
    serve_pull_request(recorder, pr_json, [comment_json("ping", 40)], [commit_json(40)])

    summary = run_scan(make_context, {"org/bad": broken, REPO: repository_settings})

    assert summary["org/bad"] == [Skipped("template error")]
    assert [str(post.url) for post in recorder.posts()] == [pr_json["comments_url"]]
