"""Language table and per-provider language support."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, NamedTuple

logger = logging.getLogger(__name__)


class Language(NamedTuple):
    code: str
    name: str
    native_label: str


LANGUAGES: List[Language] = [
    Language("auto", "Auto", "Auto"),
    Language("en", "English", "English"),
    Language("zh", "Simplified Chinese", "简体"),
    Language("zh-hant", "Traditional Chinese", "繁體"),
    Language("es", "Spanish", "Español"),
    Language("de", "German", "Deutsch"),
    Language("pt-br", "Portuguese (Brazil)", "Português (Brasil)"),
    Language("pt-pt", "Portuguese (Portugal)", "Português (Portugal)"),
    Language("ar", "Arabic", "العربية"),
    Language("ja", "Japanese", "日本語"),
    Language("ko", "Korean", "한국어"),
    Language("ru", "Russian", "Русский"),
    Language("fr", "French", "Français"),
    Language("it", "Italian", "Italiano"),
    Language("tr", "Turkish", "Türkçe"),
    Language("pl", "Polish", "Polski"),
    Language("uk", "Ukrainian", "Українська"),
    Language("ro", "Romanian", "Română"),
    Language("hu", "Hungarian", "Magyar"),
    Language("cs", "Czech", "Čeština"),
    Language("sk", "Slovak", "Slovenčina"),
    Language("bg", "Bulgarian", "Български"),
    Language("sv", "Swedish", "Svenska"),
    Language("da", "Danish", "Dansk"),
    Language("fi", "Finnish", "Suomi"),
    Language("nb", "Norwegian", "Norsk bokmål"),
    Language("lt", "Lithuanian", "Lietuvių"),
    Language("lv", "Latvian", "Latviešu"),
    Language("et", "Estonian", "Eesti"),
    Language("el", "Greek", "Ελληνικά"),
    Language("sl", "Slovenian", "Slovenščina"),
    Language("nl", "Dutch", "Nederlands"),
    Language("id", "Indonesian", "Bahasa Indonesia"),
    Language("ms", "Malay", "Bahasa Melayu"),
    Language("vi", "Vietnamese", "Tiếng Việt"),
    Language("hi", "Hindi", "हिन्दी"),
    Language("bn", "Bengali", "বাংলা"),
    Language("bho", "Bhojpuri", "भोजपुरी"),
    Language("mr", "Marathi", "मराठी"),
    Language("gu", "Gujarati", "ગુજરાતી"),
    Language("ta", "Tamil", "தமிழ்"),
    Language("te", "Telugu", "తెలుగు"),
    Language("kn", "Kannada", "ಕನ್ನಡ"),
    Language("th", "Thai", "ไทย"),
    Language("fil", "Filipino(Tagalog)", "Filipino"),
    Language("jv", "Javanese", "Basa Jawa"),
    Language("he", "Hebrew", "עברית"),
    Language("am", "Amharic", "አማርኛ"),
    Language("fa", "Persian", "فارسی"),
    Language("ug", "Uyghur", "ئۇيغۇرچە"),
    Language("ha", "Hausa", "هَرْشٜىٰن هَوْسَا"),
    Language("sw", "Swahili", "Kiswahili"),
    Language("uz", "Uzbek", "Oʻzbekcha"),
    Language("kk", "Kazakh", "Қазақ тілі"),
    Language("ky", "Kyrgyz", "Кыргызча"),
    Language("tk", "Turkmen", "Türkmençe"),
    Language("ur", "Urdu", "اردو"),
    Language("hr", "Croatian", "Hrvatski"),
]

_BY_CODE: Dict[str, Language] = {lang.code: lang for lang in LANGUAGES}

# DeepL / DeepLX 不支持的语言
DEEPL_UNSUPPORTED: FrozenSet[str] = frozenset({
    "ms", "vi", "hi", "bn", "bho", "mr", "gu", "ta", "te", "kn", "th", "fil",
    "jv", "he", "am", "fa", "ug", "ha", "sw", "uz", "kk", "ky", "tk", "ur", "hr",
})

# Azure 仅不支持 jv
AZURE_UNSUPPORTED: FrozenSet[str] = frozenset({"jv"})

UNSUPPORTED_LANGUAGES: Dict[str, FrozenSet[str]] = {
    "deepl": DEEPL_UNSUPPORTED,
    "deeplx": DEEPL_UNSUPPORTED,
    "azure": AZURE_UNSUPPORTED,
}

FALLBACK_PROVIDER = "gtxFreeAPI"


@dataclass(frozen=True)
class LanguageSupport:
    supported: bool
    error_message: Optional[str] = None


def get_language_name(code: str) -> str:
    """Return the English name for a language code, or the code itself."""
    lang = _BY_CODE.get(code)
    return lang.name if lang else code


def is_valid_language(code: str) -> bool:
    return code in _BY_CODE


def is_provider_supported_for_language(provider: str, code: str) -> bool:
    # GTX, Google 和所有 LLM 都支持全部语言
    return code not in UNSUPPORTED_LANGUAGES.get(getattr(provider, "value", provider), frozenset())


def check_language_support(provider: str, source_language: str, target_language: str) -> LanguageSupport:
    """
    Check whether ``provider`` can translate between the two languages.

    The error message tells the caller to switch to the free GTX provider,
    which supports every language in the table.
    """
    provider = getattr(provider, "value", provider)
    source = _BY_CODE.get(source_language)
    target = _BY_CODE.get(target_language)

    if source is None or target is None:
        logger.error("Invalid language code provided")
        return LanguageSupport(False, "Invalid language code provided")

    for lang in (source, target):
        if not is_provider_supported_for_language(provider, lang.code):
            return LanguageSupport(
                False,
                f"{provider.upper()} doesn't support {lang.name}. Switching to free GTX API now.",
            )

    return LanguageSupport(True)
