"""
Stand-in for the yt-dlp command line used by the integration tests.

Understands the handful of invocations the fetcher adapter makes. Markers in
the URL select the behaviour: ``agegate``, ``fail``, ``noformat``, ``nomedia``,
``slow``, ``emptylist`` and ``brokenlist``.
"""

import json
import sys
import time
from pathlib import Path
from urllib.parse import parse_qs, urlparse


def media_id(url):
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    if query.get("v"):
        return query["v"][0]
    return parsed.path.rstrip("/").split("/")[-1] or "unknown"


def playlist_members(url):
    query = parse_qs(urlparse(url).query)
    count = int(query.get("count", ["3"])[0])
    return [f"member{index:02d}" for index in range(1, count + 1)]


def member_url(member, playlist_url):
    # members inherit the playlist's speed marker
    suffix = "&slow=1" if "slow" in playlist_url else ""
    return f"https://www.youtube.com/watch?v={member}{suffix}"


def fail(message, code=1):
    sys.stderr.write(f"ERROR: {message}\n")
    sys.exit(code)


def dump_json(url):
    if "agegate" in url:
        fail("[youtube] abc: Sign in to confirm your age. This video may be inappropriate for some users.")
    key = media_id(url)
    print(json.dumps({
        "id": key,
        "title": f"Title of {key}",
        "description": "A test video",
        "channel": "Test Channel",
        "duration": 61,
        "tags": ["music", "live"],
        "webpage_url": url,
        "view_count": 42,
    }))


def dump_single_json(url):
    if "agegate" in url:
        fail("Sign in to confirm your age")
    if "brokenlist" in url:
        fail("Unable to download playlist JSON")
    if "list=" not in url:
        dump_json(url)
        return
    members = [] if "emptylist" in url else playlist_members(url)
    print(json.dumps({
        "_type": "playlist",
        "id": parse_qs(urlparse(url).query)["list"][0],
        "title": "Test Playlist",
        "entries": [
            {"id": member, "title": f"Title of {member}", "url": member_url(member, url)}
            for member in members
        ],
    }))


def print_ids(url):
    for member in playlist_members(url):
        print(f"{member}\tTitle of {member}")


def download(args):
    url = args[-1]
    template = args[args.index("--output") + 1]
    output = Path(template.replace("%(ext)s", "{ext}"))
    output.parent.mkdir(parents=True, exist_ok=True)

    if "noformat" in url:
        fail("Requested format is not available. Use --list-formats for a list of available formats")

    ticks = [5.0, 20.0, 45.5, 80.0, 100.0]
    delay = 0.0
    if "slow" in url:
        ticks = [float(tick) / 2 for tick in range(1, 200)]
        delay = 0.1

    partial = Path(str(output).format(ext="mp4.part"))
    partial.write_bytes(b"partial")
    for tick in ticks:
        print(f"[download]  {tick:5.1f}% of   10.00MiB at  1.00MiB/s ETA 00:05", flush=True)
        if delay:
            time.sleep(delay)

    if "fail" in url:
        fail("unable to download video data: HTTP Error 403: Forbidden")

    partial.unlink()
    if "nomedia" not in url:
        Path(str(output).format(ext="mp4")).write_bytes(b"\x00" * 2048)
    Path(str(output).format(ext="jpg")).write_bytes(b"\xff\xd8\xff")
    if "--write-subs" in args:
        Path(str(output).format(ext="en.vtt")).write_text("WEBVTT\n")
    print("[download] 100% done", flush=True)


def main(argv):
    if "--version" in argv:
        print("2024.08.06")
        return
    url = argv[-1]
    if "--dump-json" in argv:
        dump_json(url)
    elif "--dump-single-json" in argv:
        dump_single_json(url)
    elif "--print" in argv:
        print_ids(url)
    else:
        download(argv)


if __name__ == "__main__":
    main(sys.argv[1:])
