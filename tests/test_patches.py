"""Tests for the identity patch definitions."""

from __future__ import annotations

import pytest

from cursor_shadow_patch.engine import APPLIED, NOT_FOUND, REAPPLIED, apply_patch, apply_rule, read_marker_value
from cursor_shadow_patch.patches import all_patches, get_patch
from cursor_shadow_patch.patches.base import IdentityPatch, PatternRule, wrap_value
from cursor_shadow_patch.patches.device_id import DEV_DEVICE_ID
from cursor_shadow_patch.patches.mac_address import MAC_ADDRESS
from cursor_shadow_patch.patches.machine_id import MACHINE_ID
from cursor_shadow_patch.patches.sqm_id import SQM_ID

MAC = "0A:1B:2C:3D:4E:5F"
UUID = "0f6c2a8e-5d1b-4c7e-9a3f-2b8d4e6f1a0c"

MAC_CLASSIC = (
    'function Fs(){const e=Ls.networkInterfaces();for(const t in e){const n=e[t];'
    'if(n)for(const{mac:r}of n)if(zo(r))return r}'
    'throw new Error("Unable to retrieve mac address (unexpected format)")}'
)
MAC_ARROW = (
    'Fs=()=>{const e=Ls.networkInterfaces();for(const t in e){const n=e[t];'
    'if(n)for(const{mac:r}of n)if(zo(r))return r}'
    'throw new Error("Unable to retrieve mac address (unexpected format)")}'
)
DEVICE_INLINE = 'async function Ws(){return await(await import("@vscode/deviceid")).getDeviceId()}'
DEVICE_SPLIT = 'async function Ws(){const e=await import("@vscode/deviceid");return await e.getDeviceId()}'


class TestRegistry:
    def test_order(self):
        assert [p.name for p in all_patches()] == ["machine_id", "mac_address", "sqm_id", "dev_device_id"]

    def test_get_patch(self):
        assert get_patch("sqm_id") is SQM_ID

    def test_get_unknown_patch(self):
        with pytest.raises(ValueError):
            get_patch("nope")

    def test_marker_ids_are_distinct(self):
        assert sorted(p.rule_id for p in all_patches()) == [1, 2, 3, 4]

    def test_only_machine_id_is_required(self):
        assert [p.name for p in all_patches() if p.required] == ["machine_id"]

    def test_variants_must_share_marker(self):
        a = PatternRule(id=1, search="a", replacement="{payload}", probe="x")
        b = PatternRule(id=2, search="b", replacement="{payload}", probe="y")
        with pytest.raises(ValueError):
            IdentityPatch(name="bad", label="Bad", rules=(a, b), generate=str)


class TestMachineId:
    def test_promise_race(self):
        content = 'this.machineId=await Promise.race([Ys(),timeout(5e3).then(()=>Xs)]),this.ready=!0'
        new, outcome = apply_patch(content, MACHINE_ID, UUID)
        assert new == f'this.machineId={wrap_value(1, UUID)},this.ready=!0'
        assert outcome.status == APPLIED

    def test_statement_boundary(self):
        content = "a=b;c(timeout(5e3),1)"
        new, outcome = apply_patch(content, MACHINE_ID, UUID)
        assert new == content
        assert outcome.status == NOT_FOUND


class TestMacAddress:
    def test_classic_function(self):
        new, outcome = apply_patch("x;" + MAC_CLASSIC + ";y", MAC_ADDRESS, MAC)
        assert new == f"x;function Fs(){{return{wrap_value(2, MAC)};}};y"
        assert outcome.variant == 0

    def test_arrow_function(self):
        new, outcome = apply_patch(MAC_ARROW, MAC_ADDRESS, MAC)
        assert new == f"Fs=()=>{{return{wrap_value(2, MAC)};}}"
        assert outcome.variant == 1

    def test_does_not_swallow_previous_function(self):
        content = "function Ga(){return 1}" + MAC_CLASSIC
        new, _ = apply_patch(content, MAC_ADDRESS, MAC)
        assert new.startswith("function Ga(){return 1}function Fs(){return")

    def test_rerun(self):
        once, _ = apply_patch(MAC_ARROW, MAC_ADDRESS, MAC)
        twice, outcome = apply_patch(once, MAC_ADDRESS, "FF:FF:FF:FF:FF:FF")
        assert twice == f'Fs=()=>{{return{wrap_value(2, "FF:FF:FF:FF:FF:FF")};}}'
        assert outcome.status == REAPPLIED


class TestSqmId:
    def test_registry_lookup(self):
        content = (
            'async function Hs(){try{return(await import("@vscode/windows-registry"))'
            '.GetStringRegKey("HKEY_LOCAL_MACHINE","SOFTWARE\\\\Microsoft\\\\SQMClient","MachineId")||""}'
            'catch{return""}}'
        )
        new, outcome = apply_patch(content, SQM_ID, "")
        assert new == 'async function Hs(){try{return/*csp3*/""/*3csp*/}catch{return""}}'
        assert outcome.status == APPLIED

    def test_default_value_is_empty(self):
        assert SQM_ID.generate() == ""


class TestDeviceId:
    def test_inline_import(self):
        new, outcome = apply_patch(DEVICE_INLINE, DEV_DEVICE_ID, UUID)
        assert new == f"async function Ws(){{return{wrap_value(4, UUID)}}}"
        assert outcome.variant == 0

    def test_split_import(self):
        new, outcome = apply_patch(DEVICE_SPLIT, DEV_DEVICE_ID, UUID)
        assert new == (
            'async function Ws(){const e=await import("@vscode/deviceid");'
            f"return{wrap_value(4, UUID)}}}"
        )
        assert outcome.variant == 1

    def test_split_import_rerun(self):
        once, _ = apply_patch(DEVICE_SPLIT, DEV_DEVICE_ID, UUID)
        twice, outcome = apply_patch(once, DEV_DEVICE_ID, UUID)
        assert twice == once
        assert outcome.status == REAPPLIED

    def test_stored_value(self):
        new, _ = apply_patch(DEVICE_INLINE, DEV_DEVICE_ID, UUID)
        assert DEV_DEVICE_ID.is_already_patched(new)
        assert read_marker_value(new, DEV_DEVICE_ID.rule_id) == UUID
        assert read_marker_value(DEVICE_INLINE, DEV_DEVICE_ID.rule_id) is None


MACHINE_RACE = 'this.machineId=await Promise.race([Ys(),timeout(5e3).then(()=>Xs)]),this.ready=!0'
MACHINE_CALL = "a=f(Timeout(1,5e3),1);"
SQM_LOOKUP = (
    'async function Hs(){try{return(await import("@vscode/windows-registry"))'
    '.GetStringRegKey("HKEY_LOCAL_MACHINE","SOFTWARE\\\\Microsoft\\\\SQMClient","MachineId")||""}'
    'catch{return""}}'
)


@pytest.mark.parametrize(
    "patch,variant,snippet",
    [
        (MACHINE_ID, 0, MACHINE_RACE),
        (MACHINE_ID, 1, MACHINE_CALL),
        (MAC_ADDRESS, 0, MAC_CLASSIC),
        (MAC_ADDRESS, 1, MAC_ARROW),
        (SQM_ID, 0, SQM_LOOKUP),
        (DEV_DEVICE_ID, 0, DEVICE_INLINE),
        (DEV_DEVICE_ID, 1, DEVICE_SPLIT),
    ],
)
def test_patched_region_matches_only_the_marker_pattern(patch, variant, snippet):
    rule = patch.rules[variant]
    value = patch.generate() or "v"
    assert rule.search_re.search(snippet) is not None

    patched, outcome = apply_rule(snippet, rule, value)
    assert outcome.status == APPLIED

    literal = wrap_value(rule.id, value)
    marker_at = patched.index(literal)
    for r in patch.rules:
        m = r.search_re.search(patched)
        assert m is None or m.end() <= marker_at or m.start() >= marker_at + len(literal)

    found = rule.probe_re.search(patched)
    assert found is not None
    assert found.start() <= marker_at and marker_at + len(literal) <= found.end()


def test_every_variant_is_covered():
    assert sum(len(p.rules) for p in all_patches()) == 7
