import importlib.util
from datetime import timedelta
from pathlib import Path

from sqlmodel import Session, func, select

from auctionhub import models
from auctionhub.config import settings
from auctionhub.database import engine
from auctionhub.utils import email as email_module

from conftest import auth_headers, create_item, end_date

SCRIPTS = Path(__file__).resolve().parents[1] / "scripts"


def _load_script(name):
    spec = importlib.util.spec_from_file_location(f"scripts_{name}", SCRIPTS / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _capture_emails(monkeypatch):
    sent = []

    class Accepted:
        status_code = 200

    def fake_post(url, headers=None, json=None, timeout=None):
        sent.append(json)
        return Accepted()

    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test")
    monkeypatch.setattr(email_module.requests, "post", fake_post)
    return sent


def test_close_auctions_emails_winner_and_reminds_bidders_once(client, seller, bidder, other_bidder, monkeypatch):
    ending = create_item(client, seller["token"], name="Ending Lamp", auctionEndDate=end_date(0.25))
    later = create_item(client, seller["token"], name="Later Lamp", auctionEndDate=end_date(5))
    finished = create_item(client, seller["token"], name="Finished Lamp")
    for item in (ending, later, finished):
        client.post("/api/bids", json={"itemId": item["id"], "amount": 11}, headers=auth_headers(bidder["token"]))
    client.post("/api/bids", json={"itemId": ending["id"], "amount": 12}, headers=auth_headers(other_bidder["token"]))
    with Session(engine) as session:
        row = session.get(models.Item, finished["id"])
        row.auction_end_date = models.utcnow() - timedelta(seconds=1)
        session.add(row)
        session.commit()

    sent = _capture_emails(monkeypatch)
    close_auctions = _load_script("close_auctions")
    results = close_auctions.main(ending_within=24)

    assert [(r["item_id"], r["status"]) for r in results] == [(finished["id"], "sold")]
    subjects = sorted((m["to"][0], m["subject"]) for m in sent)
    assert subjects == [
        ("bidder@example.com", "Ending soon: Ending Lamp"),
        ("bidder@example.com", "You won: Finished Lamp"),
        ("other@example.com", "Ending soon: Ending Lamp"),
    ]

    sent.clear()
    close_auctions.main(ending_within=24)
    assert sent == []


def test_seed_database_can_run_twice_with_keep():
    seed = _load_script("seed_database")
    seed.main()
    seed.main(keep=True, max_items=2)
    with Session(engine) as session:
        assert session.exec(select(func.count()).select_from(models.User)).one() == len(seed.USERS)
        assert session.exec(select(func.count()).select_from(models.Item)).one() == len(seed.ITEMS) + 2
