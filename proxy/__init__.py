"""proxy/ -- Upstream (Strapi) credential handling and request forwarding.

Layer rule: proxy/ imports from core/ and cache/ only. It does NOT import
from api/, auth/, or content/. content/ and api/ import from proxy/.
"""
