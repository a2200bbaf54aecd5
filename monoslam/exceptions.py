"""
Error kinds raised by the SLAM backend.

MatchFailed and InsufficientInliers are recoverable: the initializer
swallows them and waits for the next frame. NotFound and IdSpaceExhausted
propagate to the caller.
"""


class SlamError(Exception):
    """Base class for all monoslam errors."""


class MatchFailed(SlamError):
    """Feature matching or RANSAC fitting produced no usable essential matrix."""


class InsufficientInliers(SlamError):
    """The best pose hypothesis left too few points in front of both cameras."""

    def __init__(self, inliers, total, min_ratio=0.5):
        self.inliers = inliers
        self.total = total
        self.min_ratio = min_ratio
        super().__init__(
            f"Only {inliers}/{total} correspondences passed the cheirality test "
            f"(need ratio >= {min_ratio})"
        )


class NotFound(SlamError, KeyError):
    """Lookup of an unknown keyframe or map point identity."""

    def __init__(self, kind, id):
        self.kind = kind
        self.id = id
        super().__init__(f"{kind} {id} not found in map")

    def __str__(self):
        # KeyError would otherwise repr() the message
        return self.args[0]


class IdSpaceExhausted(SlamError):
    """The identity counter reached its limit; ids can no longer be unique."""

    def __init__(self, limit):
        self.limit = limit
        super().__init__(f"Identity counter exceeded limit {limit}")
