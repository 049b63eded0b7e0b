#!/usr/bin/env python3
"""
Name Normalizer
String hygiene shared by the product matcher and the name-mapping cache.
"""

import re
from typing import List, Optional

_PUNCTUATION = re.compile(r'[^\w\s]|_')
_NON_ALNUM = re.compile(r'[^0-9a-z]')


def normalize_name(text: Optional[str]) -> str:
    """
    Lower-case, replace punctuation with spaces and collapse whitespace.

    "Choc. Cake  (Slice)" -> "choc cake slice"
    """
    if not text:
        return ''
    result = str(text).replace('\u00A0', ' ').lower()
    result = _PUNCTUATION.sub(' ', result)
    return ' '.join(result.split())


def compact_name(text: Optional[str]) -> str:
    """Lower-case with every non-alphanumeric character removed ("Choc-Cake 1" -> "choccake1")"""
    if not text:
        return ''
    return _NON_ALNUM.sub('', str(text).lower())


def clean_text(text: Optional[str]) -> str:
    """Lower-case and collapse whitespace, keeping punctuation"""
    if not text:
        return ''
    return ' '.join(str(text).replace('\u00A0', ' ').lower().split())


def normalize_unit(text: Optional[str]) -> str:
    return clean_text(text)


def significant_words(text: Optional[str]) -> List[str]:
    """Words longer than 2 characters; short tokens ("of", "x2") carry no signal"""
    return [w for w in normalize_name(text).split() if len(w) > 2]
