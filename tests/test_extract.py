from __future__ import annotations

from dalat_news_pipeline.extract import (
    dalat_keyword_hits,
    extract_by_pattern,
    extract_content,
    extract_element_by_class,
    extract_images,
    extract_og_image,
    extract_published_date,
    extract_text_from_html_fragment,
    extract_title,
    is_dalat_related,
    strip_html,
)


LONG = "Lễ hội hoa Đà Lạt thu hút hàng nghìn du khách đến thành phố ngàn hoa. " * 3


class TestStripHtml:
    def test_drops_scripts_styles_and_tags(self):
        html = "<p>Hello <b>Da Lat</b></p><script>var x = 1;</script><style>p{}</style>"
        assert strip_html(html) == "Hello Da Lat"

    def test_decodes_common_entities_and_collapses_whitespace(self):
        assert strip_html("A&nbsp;&amp;\n\n B &lt;c&gt; &quot;d&quot; &#39;e&#39;") == "A & B <c> \"d\" 'e'"

    def test_double_escaped_entity_decodes_once(self):
        assert strip_html("&amp;lt;") == "&lt;"

    def test_empty(self):
        assert strip_html("") == ""


def test_extract_by_pattern_uses_first_group():
    html = '<span class="date">Thứ hai, <b>12/02/2026</b></span>'
    assert extract_by_pattern(html, r'<span class="date">(.*?)</span>') == "Thứ hai, 12/02/2026"
    assert extract_by_pattern(html, r"<nope>(.*)</nope>") is None


class TestExtractTitle:
    def test_prefers_headline_h1(self):
        html = '<h1>Site</h1><h1 class="title-detail">Mưa lớn ở Đà Lạt</h1>'
        assert extract_title(html) == "Mưa lớn ở Đà Lạt"

    def test_falls_back_to_any_h1(self):
        assert extract_title("<h1> Plain <i>heading</i> </h1>") == "Plain heading"

    def test_falls_back_to_og_title_then_title_tag(self):
        og = '<html><head><meta property="og:title" content="OG Title"><title>Doc</title></head></html>'
        assert extract_title(og) == "OG Title"
        assert extract_title("<html><head><title>Doc title</title></head></html>") == "Doc title"

    def test_none_when_nothing_found(self):
        assert extract_title("<p>no title here</p>") is None


class TestExtractElementByClass:
    def test_balances_nested_divs(self):
        html = (
            '<div class="wrap"><div class="fck_detail main">'
            "<div><p>one</p></div><div>two</div>"
            "</div><div>after</div></div>"
        )
        inner = extract_element_by_class(html, "fck_detail")
        assert inner == "<div><p>one</p></div><div>two</div>"

    def test_does_not_count_other_tags_starting_with_same_letters(self):
        html = '<section class="body"><sectionx>a</sectionx><p>b</p></section>'
        assert extract_element_by_class(html, "body") == "<sectionx>a</sectionx><p>b</p>"

    def test_unbalanced_returns_none(self):
        assert extract_element_by_class('<div class="content"><div>never closed', "content") is None

    def test_missing_class(self):
        assert extract_element_by_class('<div class="other">x</div>', "content") is None


class TestExtractContent:
    def test_first_container_over_threshold_wins(self):
        html = f'<div class="short">tiny</div><article class="detail">{LONG}</article>'
        assert extract_content(html, ["short", "detail"]) == LONG.strip()

    def test_falls_back_to_og_description(self):
        html = '<meta property="og:description" content="Tóm tắt bài"><div class="detail">tiny</div>'
        assert extract_content(html, ["detail"]) == "Tóm tắt bài"

    def test_empty_when_nothing_usable(self):
        assert extract_content("<p>x</p>", ["detail"]) == ""


class TestImages:
    def test_og_image_first_then_lazy_sources_deduplicated(self):
        html = (
            '<meta property="og:image" content="https://cdn.vn/cover.jpg">'
            '<img src="https://cdn.vn/cover.jpg">'
            '<img data-src="/photos/a.jpg">'
            '<img data-original="https://cdn.vn/b.png">'
        )
        assert extract_images(html, base_url="https://vnexpress.net/x.html") == [
            "https://cdn.vn/cover.jpg",
            "https://vnexpress.net/photos/a.jpg",
            "https://cdn.vn/b.png",
        ]

    def test_filters_decorative_images(self):
        html = (
            '<img src="data:image/png;base64,AAAA">'
            '<img src="/spinner.gif">'
            '<img src="/img/logo.png">'
            '<img src="/img/user-avatar.jpg">'
            '<img src="/img/tracking-pixel.png">'
            '<img src="/img/icon-share.png">'
            '<img src="/img/1x1.png">'
            '<img src="/img/real.jpg">'
        )
        assert extract_images(html) == ["/img/real.jpg"]

    def test_og_image(self):
        assert extract_og_image('<meta property="og:image" content="https://a/b.jpg">') == "https://a/b.jpg"
        assert extract_og_image("<p></p>") is None


class TestPublishedDate:
    def test_meta_tag_wins(self):
        html = '<meta property="article:published_time" content="2026-02-12T08:00:00+07:00"> 01/01/2020'
        assert extract_published_date(html) == "2026-02-12T08:00:00+07:00"

    def test_vietnamese_date_with_time(self):
        assert extract_published_date("<span>Thứ năm, 5/3/2026, 9:05 (GMT+7)</span>") == "2026-03-05T09:05:00+07:00"

    def test_vietnamese_date_without_time(self):
        assert extract_published_date("<span>12/02/2026</span>") == "2026-02-12T00:00:00+07:00"

    def test_none(self):
        assert extract_published_date("<p>no date</p>") is None

    def test_impossible_calendar_date(self):
        assert extract_published_date("<span>31/02/2026</span>") is None
        assert extract_published_date("<span>12/02/2026, 25:10</span>") is None


class TestRelevance:
    def test_with_and_without_diacritics(self):
        assert is_dalat_related("Mưa lớn ở Đà Lạt", "")
        assert is_dalat_related("Heavy rain", "in da lat tonight")
        assert is_dalat_related("", "Tỉnh Lâm Đồng công bố")
        assert not is_dalat_related("Hà Nội", "tin tức thủ đô")

    def test_keyword_hits_count_distinct_keywords(self):
        assert dalat_keyword_hits("Hanoi traffic") == 0
        assert dalat_keyword_hits("Langbiang trek") == 1
        assert dalat_keyword_hits("Langbiang and Lạc Dương") == 2


def test_text_from_fragment():
    assert extract_text_from_html_fragment("<p>Đà Lạt <a href='#'>news</a></p>") == "Đà Lạt news"
