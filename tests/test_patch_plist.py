from __future__ import annotations

import pytest

from patchkit.errors import PatchFormatError
from patchkit.patch_ops.plist import apply_property_list, escape_xml, format_plist_value
from patchkit.patch_ops.types import EntitlementsPatch, PropertyListPatch

INFO_PLIST = """<?xml version="1.0" encoding="UTF-8"?>
<plist version="1.0">
<dict>
\t<key>CFBundleName</key>
\t<string>App</string>
\t<key>UIBackgroundModes</key>
\t<array>
\t\t<string>fetch</string>
\t</array>
</dict>
</plist>
"""


def _op(key: str, value, mode: str = "set", operation_id: str = "op-1") -> PropertyListPatch:
    return PropertyListPatch(
        file="ios/App/Info.plist", capability_id="cap", operation_id=operation_id, key=key, value=value, mode=mode
    )


def test_insert_new_key_before_root_dict_close() -> None:
    out = apply_property_list(INFO_PLIST, _op("NSCameraUsageDescription", "Scan codes", operation_id="cam"))
    assert (
        "\t</array>\n"
        "\t<!-- @rns-patch:cam -->\n"
        "\t<key>NSCameraUsageDescription</key>\n"
        "\t<string>Scan codes</string>\n"
        "</dict>\n"
        "</plist>\n"
    ) in out


def test_append_adds_only_missing_items_and_records_marker() -> None:
    out = apply_property_list(INFO_PLIST, _op("UIBackgroundModes", ["fetch", "remote-notification"], "append", "bg"))
    assert out.count("<string>fetch</string>") == 1
    assert (
        "\t<!-- @rns-patch:bg -->\n"
        "\t<key>UIBackgroundModes</key>\n"
        "\t<array>\n"
        "\t\t<string>fetch</string>\n"
        "\t\t<string>remote-notification</string>\n"
        "\t</array>\n"
    ) in out


def test_existing_key_in_set_mode_keeps_value() -> None:
    out = apply_property_list(INFO_PLIST, _op("CFBundleName", "Other", operation_id="name"))
    assert "<string>App</string>" in out
    assert "<string>Other</string>" not in out
    assert "<!-- @rns-patch:name -->\n\t<key>CFBundleName</key>" in out


def test_nested_dict_is_not_the_insertion_point() -> None:
    nested = """<plist version="1.0">
<dict>
\t<key>NSAppTransportSecurity</key>
\t<dict>
\t\t<key>NSAllowsArbitraryLoads</key>
\t\t<false/>
\t</dict>
</dict>
</plist>
"""
    out = apply_property_list(nested, _op("ITSAppUsesNonExemptEncryption", False, operation_id="enc"))
    assert "\t</dict>\n\t<!-- @rns-patch:enc -->\n\t<key>ITSAppUsesNonExemptEncryption</key>\n\t<false/>\n</dict>" in out


def test_empty_dict_is_expanded() -> None:
    out = apply_property_list("<plist version=\"1.0\">\n<dict/>\n</plist>\n", _op("A", 1, operation_id="a"))
    assert "<dict>\n    <!-- @rns-patch:a -->\n    <key>A</key>\n    <integer>1</integer>\n</dict>" in out


def test_entitlements_array_value() -> None:
    src = '<plist version="1.0">\n<dict>\n</dict>\n</plist>\n'
    op = EntitlementsPatch(
        file="ios/App/App.entitlements",
        capability_id="links",
        operation_id="links-domains",
        key="com.apple.developer.associated-domains",
        value=["applinks:example.com"],
    )
    out = apply_property_list(src, op)
    assert "<key>com.apple.developer.associated-domains</key>" in out
    assert "<string>applinks:example.com</string>" in out


def test_not_a_plist_raises() -> None:
    with pytest.raises(PatchFormatError):
        apply_property_list("hello", _op("A", "b"))


def test_format_plist_value() -> None:
    assert format_plist_value(True) == "<true/>"
    assert format_plist_value(False) == "<false/>"
    assert format_plist_value(3) == "<integer>3</integer>"
    assert format_plist_value(1.5) == "<real>1.5</real>"
    assert format_plist_value("a&b") == "<string>a&amp;b</string>"
    assert format_plist_value(["x"], indent="\t") == "<array>\n\t\t<string>x</string>\n\t</array>"


def test_escape_xml() -> None:
    assert escape_xml("<a href=\"x\">'</a>") == "&lt;a href=&quot;x&quot;&gt;&apos;&lt;/a&gt;"
