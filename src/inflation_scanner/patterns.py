"""Host, endpoint and identifier pattern tables used across the classifiers."""

from __future__ import annotations

import re

GA_ENDPOINT_HOSTS = ("google-analytics.com", "stats.g.doubleclick.net")
GA_COLLECT_PATHS = ("/g/collect", "/collect")

AD_HOST_PATTERNS = (
    "doubleclick.net",
    "googlesyndication.com",
    "amazon-adsystem.com",
    "pubmatic.com",
    "criteo.com",
    "rubiconproject.com",
    "rubiconproject.net",
    "rubiconproject",
)

VIEWABILITY_KEYWORDS = (
    "view",
    "viewable",
    "in_view",
    "inview",
    "visible",
    "pct",
    "percent",
    "time_in_view",
    "viewport",
)

SAFE_SYNC_KEYWORDS = (
    "sync",
    "pixel",
    "beacon",
    "getuid",
    "usermatch",
    "push_onload",
    "usersync",
    "cm/pixel",
    "usync",
    "amazon-adsystem",
)

# Query parameters that name an ad slot, in priority order.
AD_SLOT_PARAMS = ("adid", "ad_id", "tagid", "placement_id", "slotname", "iu")

CONSENT_KEYWORDS = (
    "accept",
    "agree",
    "allow all",
    "aceptar",
    "estoy de acuerdo",
    "ok",
    "i agree",
    "accept all",
    "allow cookies",
    "accept cookies",
)

# Canonical identifier formats (matched against upper-cased input).
GA4_VALID_RE = re.compile(r"^G-[A-Z0-9]{8,12}$")
UA_VALID_RE = re.compile(r"^UA-\d{8,10}-\d{1,2}$")
GTM_VALID_RE = re.compile(r"^GTM-[A-Z0-9]{4,10}$")
AW_VALID_RE = re.compile(r"^AW-\d{6,}$")
FB_VALID_RE = re.compile(r"^\d{8,18}$")

# Extraction patterns for free text (script bodies, HTML, URLs).
GA4_TOKEN_RE = re.compile(r"G-[A-Z0-9]{8,12}", re.IGNORECASE)
GA4_WORD_RE = re.compile(r"\bG-[A-Z0-9]{8,12}\b")
GTAG_JS_URL_RE = re.compile(r"googletagmanager\.com/gtag/js\?id=(G-[A-Z0-9]{8,12})", re.IGNORECASE)
GTAG_CONFIG_RE = re.compile(r"gtag\(\s*['\"]config['\"]\s*,\s*['\"](G-[A-Z0-9]{8,12})['\"]", re.IGNORECASE)
MEASUREMENT_ID_KEY_RE = re.compile(r"['\"]measurement_id['\"]\s*:\s*['\"](G-[A-Z0-9]{8,12})['\"]", re.IGNORECASE)
UA_TOKEN_RE = re.compile(r"UA-\d{8,10}-\d{1,2}", re.IGNORECASE)
GTM_TOKEN_RE = re.compile(r"GTM-[A-Z0-9]{4,10}", re.IGNORECASE)
GTM_WORD_RE = re.compile(r"\bGTM-[A-Z0-9]+\b")
AW_TOKEN_RE = re.compile(r"AW-\d{6,}", re.IGNORECASE)
AW_WORD_RE = re.compile(r"\bAW-\d{6,}\b")
FBQ_INIT_RE = re.compile(r"fbq\(\s*['\"]init['\"]\s*,\s*['\"]?(\d{8,18})", re.IGNORECASE)

# Identifiers embedded directly in request URLs.
URL_GTM_ID_RE = re.compile(r"id=(GTM-[A-Z0-9]+)", re.IGNORECASE)
URL_GTAG_GA4_ID_RE = re.compile(r"id=(G-[A-Z0-9]{10})", re.IGNORECASE)
URL_GA4_ID_RE = re.compile(r"id=(G-[A-Z0-9]{8,12})", re.IGNORECASE)
URL_FB_PIXEL_ID_RE = re.compile(r"[?&]id=(\d{8,18})")
URL_FB_TR_ID_RE = re.compile(r"[?&]id=(\d{8,20})")
GTM_KEY_PREFIX_RE = re.compile(r"^(GTM-[A-Z0-9]+)", re.IGNORECASE)


__all__ = [
    "AD_HOST_PATTERNS",
    "AD_SLOT_PARAMS",
    "AW_TOKEN_RE",
    "AW_VALID_RE",
    "AW_WORD_RE",
    "CONSENT_KEYWORDS",
    "FBQ_INIT_RE",
    "FB_VALID_RE",
    "GA4_TOKEN_RE",
    "GA4_VALID_RE",
    "GA4_WORD_RE",
    "GA_COLLECT_PATHS",
    "GA_ENDPOINT_HOSTS",
    "GTAG_CONFIG_RE",
    "GTAG_JS_URL_RE",
    "GTM_KEY_PREFIX_RE",
    "GTM_TOKEN_RE",
    "GTM_VALID_RE",
    "GTM_WORD_RE",
    "MEASUREMENT_ID_KEY_RE",
    "SAFE_SYNC_KEYWORDS",
    "UA_TOKEN_RE",
    "UA_VALID_RE",
    "URL_FB_PIXEL_ID_RE",
    "URL_FB_TR_ID_RE",
    "URL_GA4_ID_RE",
    "URL_GTAG_GA4_ID_RE",
    "URL_GTM_ID_RE",
    "VIEWABILITY_KEYWORDS",
]
