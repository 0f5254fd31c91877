from bizcrawler.extractor import SignalExtractor, clean_text
from bizcrawler.models import RawPage

BASE = "https://barber.example/"


def extract(body, head="<title>Barber Joe | Home</title>", url=BASE):
    html = f"<html><head>{head}</head><body>{body}</body></html>"
    return SignalExtractor().extract(RawPage(url=url, final_url=url, html=html))


def test_page_fields():
    page = extract(
        "<h1>Barber Joe</h1><main><p>Classic cuts in the old town.</p></main>",
        head='<title>Barber Joe | Home</title><meta name="description" content=" Best barber in town ">',
    )
    assert page.url == BASE
    assert page.title == "Barber Joe | Home"
    assert page.h1 == "Barber Joe"
    assert page.description == "Best barber in town"
    assert "Classic cuts in the old town." in page.main_text


def test_main_text_drops_scripts_and_cookie_banners():
    page = extract(
        '<main><p>We cut hair.</p><script>var x = "tracking";</script>'
        '<div class="cookie-consent">Accept all cookies</div></main>'
    )
    assert "We cut hair." in page.main_text
    assert "tracking" not in page.main_text
    assert "cookies" not in page.main_text


def test_labelled_prices():
    page = extract("<main><p>Haircut – 20€</p><p>Beard trim: 10€</p></main>")
    assert [(p.label, p.amount_text) for p in page.prices] == [("Haircut", "20€"), ("Beard trim", "10€")]


def test_price_rows_and_prefixed_prices():
    page = extract(
        "<table><tr><td>Laser treatment</td><td>120 EUR</td></tr></table>"
        "<main><p>Gift card only $50 this week</p></main>"
    )
    amounts = [p.amount_text for p in page.prices]
    assert "120 EUR" in amounts
    assert "$50" in amounts
    row = next(p for p in page.prices if p.amount_text == "120 EUR")
    assert row.label == "Laser treatment"


def test_phones_and_emails():
    page = extract("<main><p>Call +421 905 123 456 or write to Info@Barber.example.</p></main>")
    assert page.phones == ("+421 905 123 456",)
    assert page.emails == ("Info@Barber.example",)


def test_opening_hours():
    page = extract("<main><p>Mon - Fri: 9:00 - 17:00</p><p>Sobota 8.00 – 12.00</p></main>")
    assert page.hours == ("Mon - Fri: 9:00 - 17:00", "Sobota 8.00 – 12.00")


def test_links_navigation_first_same_origin_only():
    page = extract(
        '<main><a href="/gallery">Gallery</a><a href="https://other.example/x">Partner</a>'
        '<a href="/cennik#prices">Prices</a></main>'
        '<nav><a href="/kontakt?utm_source=menu">Contact</a><a href="/cennik">Prices</a></nav>'
    )
    assert page.outbound_links == (
        "https://barber.example/kontakt",
        "https://barber.example/cennik",
        "https://barber.example/gallery",
    )


def test_links_resolve_against_final_url():
    html = '<html><body><main><a href="team">Team</a></main></body></html>'
    raw = RawPage(url="https://barber.example/o-nas", final_url="https://barber.example/sk/o-nas", html=html)
    page = SignalExtractor().extract(raw)
    assert page.outbound_links == ("https://barber.example/sk/team",)


def test_carousel_block_is_part_of_main_text():
    slides = "Student haircut 15€ every Monday. " * 5
    page = extract(f'<main><p>Welcome</p></main><div class="extracted-carousel-content">{slides}</div>')
    assert "Student haircut" in page.main_text


def test_empty_page():
    page = extract("")
    assert page.is_empty
    assert page.outbound_links == ()


def test_clean_text_collapses_whitespace():
    assert clean_text("  a  b \n\n\n\n c\t\td  ") == "a b\n\nc d"
