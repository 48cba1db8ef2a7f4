from compsengine.domain.address import address_key, clean_address, same_address
from compsengine.domain.normalize import canonical_filter_type, normalize, normalize_many, normalize_property_type
from compsengine.domain.types import PriceSource, PropertyType


def test_property_type_normalization():
    assert normalize_property_type("SFR") == PropertyType.single_family
    assert normalize_property_type("single_family") == PropertyType.single_family
    assert normalize_property_type("Condominium Unit") == PropertyType.condo
    assert normalize_property_type("Triplex") == PropertyType.multi_family
    assert normalize_property_type(None) == PropertyType.unknown
    assert normalize_property_type("houseboat") == PropertyType.unknown


def test_canonical_filter_type():
    assert canonical_filter_type(None) is None
    assert canonical_filter_type("  ") is None
    assert canonical_filter_type("townhome") == "Townhouse"


def test_normalize_full_record(raw_candidate):
    comp = normalize(raw_candidate("200 Oak Ave", price=450_000, sqft=1800))
    assert comp is not None
    assert comp.address == "200 Oak Ave"
    assert comp.city == "Springfield"
    assert comp.price == 450_000
    assert comp.price_per_sqft == 250
    assert comp.price_source == PriceSource.sold
    assert comp.is_sold is True
    assert comp.property_type == PropertyType.single_family
    assert comp.price > 0


def test_normalize_defaults_are_recorded(raw_candidate):
    comp = normalize(raw_candidate("7 Birch Ln", price=None, beds=None, sqft=None, distance=None))
    assert comp is not None
    assert comp.price == 500_000
    assert comp.price_source == PriceSource.valuation
    assert comp.bedrooms == 3
    assert comp.price_per_sqft == 0
    assert comp.is_sold is False
    assert "price" in comp.defaulted_fields
    assert "bedrooms" in comp.defaulted_fields
    assert "address" not in comp.defaulted_fields


def test_unaddressed_candidate_is_dropped():
    assert normalize({"intel": {"lastSoldPrice": 400_000}}) is None


def test_missing_id_falls_back_to_fingerprint(raw_candidate):
    raw = raw_candidate("5 Ash Dr")
    raw.pop("_id")
    comp = normalize(raw)
    assert comp.id.startswith("fp-")
    assert normalize(raw).id == comp.id


def test_normalize_many_skips_non_objects(raw_candidate):
    out = normalize_many([raw_candidate("1 Elm St"), "garbage", {}, {"foo": "bar"}])
    assert [c.address for c in out] == ["1 Elm St"]


def test_insights_are_extracted(raw_candidate):
    raw = raw_candidate(
        "3 Cedar Way",
        quickLists={"cashBuyer": True, "absenteeOwner": True},
        valuation={"equityPercent": 62, "estimatedValue": 470000},
        building={"bedroomCount": 3, "pool": True},
    )
    comp = normalize(raw)
    assert comp.insights["cash_buyer"] is True
    assert comp.insights["absentee_owner"] is True
    assert comp.insights["pool"] is True
    assert comp.insights["equity_percent"] == 62.0
    assert comp.insights["high_equity"] is False


def test_address_matching():
    assert same_address("123 Main Street", "123 main st.")
    assert same_address("10 North Elm Rd, Springfield, IL", "10 N Elm Road")
    assert not same_address("123 Main St", "125 Main St")
    assert not same_address("", "")
    assert address_key("55 West Oak Avenue") == "55 W OAK AVE"
    assert clean_address("123 Main St., Apt 4B, Springfield") == "123 Main St"
