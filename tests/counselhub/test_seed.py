from counselhub.cache import CacheScope, build_key, cache
from counselhub.models.user import CounselorProfile, User
from counselhub.seed import DEMO_USERS, seed


def test_seed_creates_demo_users_once(db_session) -> None:
    seed(db_session)
    seed(db_session)

    assert db_session.query(User).count() == len(DEMO_USERS)
    assert db_session.query(CounselorProfile).count() == 2


def test_seed_drops_cached_counselor_directory(db_session, fake_redis) -> None:
    cache.set(build_key(CacheScope.COUNSELOR_DIRECTORY), [], ttl=60)

    seed(db_session)

    assert fake_redis.store == {}
