"""
Attachment tests — upload limits, download headers, uploader/manager delete
rule and file purge on defect delete.
"""

import io
import os

import pytest

from defect_tracker.models.defect import Attachment


@pytest.fixture()
def defect_id(client, project, engineer, auth_headers):
    res = client.post("/api/v1/defects", json={"project_id": project.id, "title": "Water ingress"},
                      headers=auth_headers(engineer))
    return res.get_json()["id"]


def _upload(client, defect_id, headers, content=b"hello site", name="notes.txt",
            mimetype="text/plain"):
    return client.post(
        f"/api/v1/defects/{defect_id}/attachments",
        data={"file": (io.BytesIO(content), name, mimetype)},
        headers=headers,
        content_type="multipart/form-data",
    )


class TestUpload:
    def test_upload_list_download(self, client, defect_id, engineer, observer, auth_headers,
                                  upload_dir):
        res = _upload(client, defect_id, auth_headers(engineer))
        assert res.status_code == 201, res.get_json()
        body = res.get_json()
        assert body["original_name"] == "notes.txt"
        assert body["size"] == len(b"hello site")
        assert body["filename"].endswith(".txt")
        assert body["filename"] != "notes.txt"
        assert body["uploader"]["username"] == "erik"
        assert len(os.listdir(upload_dir)) == 1

        res = client.get(f"/api/v1/defects/{defect_id}/attachments", headers=auth_headers(observer))
        assert [a["id"] for a in res.get_json()["items"]] == [body["id"]]

        res = client.get(f"/api/v1/attachments/{body['id']}/download",
                         headers=auth_headers(observer))
        assert res.status_code == 200
        assert res.data == b"hello site"
        assert "notes.txt" in res.headers["Content-Disposition"]
        res.close()

    def test_disallowed_type(self, client, defect_id, engineer, auth_headers, upload_dir):
        res = _upload(client, defect_id, auth_headers(engineer), name="run.sh",
                      mimetype="application/x-sh")
        assert res.status_code == 400
        assert Attachment.query.count() == 0

    def test_too_large(self, app, client, defect_id, engineer, auth_headers, upload_dir,
                       monkeypatch):
        monkeypatch.setitem(app.config, "MAX_UPLOAD_SIZE", 8)
        res = _upload(client, defect_id, auth_headers(engineer), content=b"123456789")
        assert res.status_code == 400
        assert res.get_json()["details"] == {"file": "size"}
        assert not upload_dir.exists() or os.listdir(upload_dir) == []

    def test_missing_file(self, client, defect_id, engineer, auth_headers, upload_dir):
        res = client.post(f"/api/v1/defects/{defect_id}/attachments", data={},
                          headers=auth_headers(engineer), content_type="multipart/form-data")
        assert res.status_code == 400

    def test_unknown_defect(self, client, engineer, auth_headers, upload_dir):
        res = _upload(client, 999, auth_headers(engineer))
        assert res.status_code == 404

    def test_observer_cannot_upload(self, client, defect_id, observer, auth_headers, upload_dir):
        res = _upload(client, defect_id, auth_headers(observer))
        assert res.status_code == 403

    def test_download_missing_file(self, client, defect_id, engineer, auth_headers, upload_dir):
        att_id = _upload(client, defect_id, auth_headers(engineer)).get_json()["id"]
        for name in os.listdir(upload_dir):
            os.remove(upload_dir / name)
        res = client.get(f"/api/v1/attachments/{att_id}/download", headers=auth_headers(engineer))
        assert res.status_code == 404


class TestDelete:
    def test_other_engineer_forbidden(self, client, defect_id, engineer, other_engineer,
                                      auth_headers, upload_dir):
        att_id = _upload(client, defect_id, auth_headers(engineer)).get_json()["id"]
        res = client.delete(f"/api/v1/attachments/{att_id}", headers=auth_headers(other_engineer))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"
        assert Attachment.query.count() == 1

    def test_uploader_deletes_and_file_removed(self, client, defect_id, engineer, auth_headers,
                                               upload_dir):
        att_id = _upload(client, defect_id, auth_headers(engineer)).get_json()["id"]
        res = client.delete(f"/api/v1/attachments/{att_id}", headers=auth_headers(engineer))
        assert res.status_code == 200
        assert Attachment.query.count() == 0
        assert os.listdir(upload_dir) == []

    def test_manager_deletes_any(self, client, defect_id, engineer, manager, auth_headers,
                                 upload_dir):
        att_id = _upload(client, defect_id, auth_headers(engineer)).get_json()["id"]
        res = client.delete(f"/api/v1/attachments/{att_id}", headers=auth_headers(manager))
        assert res.status_code == 200

    def test_observer_cannot_delete(self, client, defect_id, engineer, observer, auth_headers,
                                    upload_dir):
        att_id = _upload(client, defect_id, auth_headers(engineer)).get_json()["id"]
        res = client.delete(f"/api/v1/attachments/{att_id}", headers=auth_headers(observer))
        assert res.status_code == 403

    def test_defect_delete_purges_files(self, client, defect_id, engineer, manager, auth_headers,
                                        upload_dir):
        _upload(client, defect_id, auth_headers(engineer))
        _upload(client, defect_id, auth_headers(engineer), content=b"%PDF-1.4", name="drawing.pdf",
                mimetype="application/pdf")
        assert len(os.listdir(upload_dir)) == 2

        res = client.delete(f"/api/v1/defects/{defect_id}", headers=auth_headers(manager))
        assert res.status_code == 200
        assert Attachment.query.count() == 0
        assert os.listdir(upload_dir) == []
