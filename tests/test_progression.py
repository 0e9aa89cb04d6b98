from academic_calendar.services.progression_service import ProgressionChain, ProgressionService


def test_ensure_progression_links_levels_in_order(db, school, secondary_levels):
    chain = ProgressionService(db).ensure_progression(school.id, "SECONDARY")

    assert len(chain) == 6
    for current, following in zip(secondary_levels, secondary_levels[1:]):
        assert current.next_level_id == following.id
        assert chain.next_id(current.id) == following.id
    assert secondary_levels[-1].next_level_id is None
    assert chain.is_terminal(secondary_levels[-1])


def test_ensure_progression_is_idempotent(db, school, secondary_levels):
    service = ProgressionService(db)
    service.ensure_progression(school.id, "SECONDARY")
    before = [level.next_level_id for level in secondary_levels]

    service.ensure_progression(school.id, "SECONDARY")

    assert [level.next_level_id for level in secondary_levels] == before


def test_existing_links_are_kept(db, school, secondary_levels):
    jss1, jss2, jss3 = secondary_levels[:3]
    jss1.next_level_id = jss3.id
    db.flush()

    ProgressionService(db).ensure_progression(school.id, "SECONDARY")

    assert jss1.next_level_id == jss3.id
    assert jss2.next_level_id == jss3.id


def test_progression_is_scoped_by_school_type(db, factory, school, secondary_levels):
    primary = factory.levels(school, ["Primary 5", "Primary 6"], "PRIMARY")

    chain = ProgressionService(db).ensure_progression(school.id, "PRIMARY")

    assert chain.names() == ["Primary 5", "Primary 6"]
    assert primary[0].next_level_id == primary[1].id
    assert secondary_levels[0].next_level_id is None
    assert secondary_levels[0].id not in chain


def test_find_cycle_reports_looping_levels(factory, school, secondary_levels):
    jss1, jss2 = secondary_levels[:2]
    jss1.next_level_id = jss2.id
    jss2.next_level_id = jss1.id

    chain = ProgressionChain([jss1, jss2])

    assert set(chain.find_cycle()) == {jss1.id, jss2.id}


def test_straight_chain_has_no_cycle(db, school, secondary_levels):
    chain = ProgressionService(db).ensure_progression(school.id, "SECONDARY")
    assert chain.find_cycle() is None


def test_untyped_repair_links_each_school_type_separately(db, factory, school):
    primary = factory.levels(school, ["Primary 1", "Primary 2"], "PRIMARY")
    secondary = factory.levels(school, ["JSS 1", "JSS 2"], "SECONDARY")

    chain = ProgressionService(db).ensure_progression(school.id, None)

    links = {
        level.name: level.next_level.name if level.next_level else None
        for level in primary + secondary
    }
    assert links == {"Primary 1": "Primary 2", "Primary 2": None, "JSS 1": "JSS 2", "JSS 2": None}
    assert chain.is_terminal(primary[-1])
    assert chain.is_terminal(secondary[-1])
