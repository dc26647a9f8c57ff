from darkmode.engine.global_sync import (
    GlobalSettings,
    SyncDecision,
    follow_color_scheme,
    sync_global_settings,
)
from darkmode.engine.state import VisualState
from darkmode.services.persistence import PersistenceLayer

from factories import enabled_store, make_engine, run


def test_from_dict_accepts_stored_camel_case():
    settings = GlobalSettings.from_dict(
        {
            "excludeSites": ["Bank.example.org"],
            "autoFollowSystem": 1,
            "globalBrightness": 80,
            "contrast": 120,
        }
    )
    assert settings.exclude_sites == ("Bank.example.org",)
    assert settings.auto_follow_system is True
    assert settings.default_enabled is False
    assert settings.brightness == 80
    assert settings.contrast == 120
    assert GlobalSettings.from_dict(None) == GlobalSettings()
    assert GlobalSettings.from_dict({"excludeSites": "one.test"}).exclude_sites == ("one.test",)


def test_exclusion_matches_host_and_subdomains():
    settings = GlobalSettings(exclude_sites=("example.com", " ", ""))
    assert settings.is_excluded("example.com")
    assert settings.is_excluded("news.EXAMPLE.com")
    assert not settings.is_excluded("badexample.com")
    assert not settings.is_excluded("")


def test_legacy_globals_upgrade_to_eye_care_defaults():
    legacy = GlobalSettings.from_dict(
        {"globalBrightness": "100", "globalContrast": 100, "globalSepia": 0, "globalGrayscale": 0}
    )
    assert legacy.uses_legacy_filters()
    assert legacy.seed_filters() == {"brightness": 92, "contrast": 95, "sepia": 12, "grayscale": 0}
    custom = GlobalSettings(brightness=80, contrast=120, sepia=5, grayscale=10)
    assert custom.seed_filters() == {"brightness": 80, "contrast": 120, "sepia": 5, "grayscale": 10}


def test_no_settings_is_a_no_op():
    engine, _, sched = make_engine(enabled=False)
    assert run(sched, sync_global_settings(engine, None)) is SyncDecision.NO_SETTINGS
    assert not engine.persistence.has_persisted_state()


def test_excluded_site_is_disabled():
    store = enabled_store("news.example.com")
    engine, _, sched = make_engine(store=store, url="https://news.example.com/")
    settings = GlobalSettings(exclude_sites=("example.com",), default_enabled=True)
    assert run(sched, sync_global_settings(engine, settings)) is SyncDecision.EXCLUDED
    assert engine.get_state() is VisualState.DISABLED
    assert PersistenceLayer(store, "news.example.com").load().enabled is False
    assert follow_color_scheme(engine, GlobalSettings(exclude_sites=("example.com",), auto_follow_system=True)) is None


def test_existing_site_record_is_kept():
    store = enabled_store(brightness=60)
    engine, _, sched = make_engine(store=store)
    settings = GlobalSettings(default_enabled=False, brightness=30)
    decision = run(sched, sync_global_settings(engine, settings))
    assert decision is SyncDecision.SITE_STATE_KEPT
    assert engine.site_state.brightness == 60
    assert engine.get_state() is VisualState.PENDING
    assert follow_color_scheme(engine, GlobalSettings(auto_follow_system=True), decision) is None


def test_new_site_is_seeded_but_stays_off():
    engine, _, sched = make_engine(enabled=False)
    settings = GlobalSettings(brightness=70, contrast=300, sepia=0, grayscale=20)
    assert run(sched, sync_global_settings(engine, settings)) is SyncDecision.SEEDED
    assert engine.get_state() is VisualState.DISABLED
    stored = PersistenceLayer(engine.persistence.store, "example.com").load()
    assert (stored.enabled, stored.brightness, stored.contrast, stored.grayscale) == (False, 70, 200, 20)


def test_default_enabled_turns_new_site_on():
    engine, _, sched = make_engine(enabled=False)
    decision = run(sched, sync_global_settings(engine, GlobalSettings(default_enabled=True)))
    assert decision is SyncDecision.ENABLED
    assert engine.get_state() is VisualState.RESOLVED_ON
    assert follow_color_scheme(engine, GlobalSettings(auto_follow_system=True, default_enabled=True), decision) is None


def test_auto_follow_enables_when_system_prefers_dark():
    engine, _, sched = make_engine(enabled=False, prefers_dark=True)
    decision = run(sched, sync_global_settings(engine, GlobalSettings(auto_follow_system=True)))
    assert decision is SyncDecision.ENABLED
    assert engine.is_enabled()


def test_follower_tracks_scheme_until_manual_toggle():
    engine, doc, sched = make_engine(enabled=False)
    settings = GlobalSettings(auto_follow_system=True)

    async def scenario():
        decision = await sync_global_settings(engine, settings)
        assert decision is SyncDecision.SEEDED
        follower = follow_color_scheme(engine, settings, decision)
        assert follower is not None and follower.active

        doc.set_prefers_dark(True)
        await follower.pending
        assert engine.get_state() is VisualState.RESOLVED_ON

        doc.set_prefers_dark(False)
        assert engine.get_state() is VisualState.DISABLED

        # the user switches the site on by hand: following stops
        await engine.enable()
        doc.set_prefers_dark(True)
        doc.set_prefers_dark(False)
        assert not follower.active
        return engine.get_state()

    assert run(sched, scenario()) is VisualState.RESOLVED_ON
