"""Tag rendering library: HTML tags for CDN or local asset URLs."""

from asset_cdn.lib.tags.renderer import TagRenderer, create_tag, make_cdn_helper, render_attributes

__all__ = ["TagRenderer", "create_tag", "make_cdn_helper", "render_attributes"]
