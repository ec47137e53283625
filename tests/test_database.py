from bson import ObjectId

from database import close_db, get_db, serialize


def test_client_reads_timestamps_as_utc():
    close_db()
    try:
        assert get_db().client.codec_options.tz_aware is True
    finally:
        close_db()


def test_serialize_renames_nested_ids():
    course_id, lesson_id = ObjectId(), ObjectId()
    doc = {"_id": course_id, "lessons": [{"_id": lesson_id, "title": "One"}], "instructor": course_id}
    assert serialize(doc) == {
        "id": str(course_id),
        "lessons": [{"id": str(lesson_id), "title": "One"}],
        "instructor": str(course_id),
    }
