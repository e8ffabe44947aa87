from datetime import datetime, timedelta

from dmarc_store.schemas.report import PolicyData, RecordData, ReportData


def make_record(ip="192.0.2.1", rcount=1, dkim="pass", spf="pass", disposition="none", **extra) -> RecordData:
    return RecordData(
        ip=ip,
        rcount=rcount,
        dkim_align=dkim,
        spf_align=spf,
        disposition=disposition,
        **extra,
    )


def make_report(
    domain="example.com",
    external_id="report-1",
    org="acme.example",
    begin=datetime(2024, 1, 10),
    days=1,
    records=None,
    **extra,
) -> ReportData:
    return ReportData(
        domain=domain,
        external_id=external_id,
        org=org,
        begin_time=begin,
        end_time=begin + timedelta(days=days),
        email="noreply@acme.example",
        policy=PolicyData(adkim="r", aspf="r", p="none", sp="none", pct="100"),
        records=records if records is not None else [make_record()],
        **extra,
    )


def seed_reports(uow, count, domain="example.com", start=datetime(2024, 1, 1), **extra):
    """Save ``count`` reports one day apart; returns them in begin_time order."""
    saved = []
    for i in range(count):
        saved.append(
            uow.reports.save(
                make_report(
                    domain=domain,
                    external_id=f"{domain}-{i:03d}",
                    begin=start + timedelta(days=i),
                    **extra,
                )
            )
        )
    return saved
