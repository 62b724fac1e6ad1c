from __future__ import annotations

from fastapi import HTTPException, Response, status


def parse_if_match(if_match: str | None) -> int:
    """
    Evaluations carry an integer version; clients echo it back as
      If-Match: 3   or   If-Match: "3"
    """
    if if_match is None:
        raise HTTPException(
            status_code=status.HTTP_428_PRECONDITION_REQUIRED,
            detail="Missing If-Match header (expected current evaluation version)",
        )

    raw = if_match.strip().removeprefix("W/")
    if len(raw) >= 2 and raw[0] == raw[-1] == '"':
        raw = raw[1:-1]

    try:
        version = int(raw)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid If-Match header (expected integer version)",
        )

    if version <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid If-Match header (version must be positive)",
        )
    return version


def stale_version(*, current: int | None = None, got: int | None = None) -> HTTPException:
    detail: dict = {"message": "Stale version, reload the evaluation and retry"}
    if current is not None:
        detail["expected"] = current
    if got is not None:
        detail["got"] = got
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


def assert_version_matches(entity, if_match_version: int) -> None:
    if entity.version != if_match_version:
        raise stale_version(current=entity.version, got=if_match_version)


def set_etag(response: Response, version: int) -> None:
    response.headers["ETag"] = f'"{version}"'
