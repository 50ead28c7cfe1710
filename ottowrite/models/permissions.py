from enum import Enum


class Permission(str, Enum):
    """Capabilities a manuscript access token can carry.

    Checks are plain set membership; ``view_full`` does not imply
    ``view_sample`` and so on.
    """

    view = "view"
    view_query = "view_query"
    view_synopsis = "view_synopsis"
    view_sample = "view_sample"
    view_full = "view_full"
    download = "download"  # disabled by default (DRM)
    print = "print"        # disabled by default (DRM)
    copy = "copy"          # disabled by default (DRM)
