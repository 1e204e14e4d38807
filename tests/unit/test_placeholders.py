import pytest

from crowdsync.language_mapping import LanguageMapping, LOCALE, TWO_LETTERS_CODE
from crowdsync.placeholders import (
    PlaceholderResolver,
    anchor,
    apply_translation_replace,
    replace_double_asterisk,
)
from tests.conftest import FRENCH, PORTUGUESE_BR, UKRAINIAN


@pytest.fixture
def resolver():
    return PlaceholderResolver([UKRAINIAN, FRENCH], base_path="/home/app")


class TestFileDependentPlaceholders:
    def test_file_placeholders(self, resolver):
        template = "/%original_path%/%file_name%.%file_extension%|%original_file_name%"
        result = resolver.replace_file_dependent(template, "/home/app/res/values/strings.xml")
        assert result == "/res/values/strings.xml|strings.xml"

    def test_root_file_collapses_empty_original_path(self, resolver):
        assert resolver.replace_file_dependent("/%original_path%/%original_file_name%", "first.po") == "/first.po"

    def test_file_without_extension(self, resolver):
        assert resolver.replace_file_dependent("%file_name%|%file_extension%", "README") == "README|"


class TestLanguageDependentPlaceholders:
    def test_intrinsic_attributes(self, resolver):
        template = "%language%|%two_letters_code%|%three_letters_code%|%locale%|%locale_with_underscore%"
        assert resolver.replace_language_dependent(template, None, UKRAINIAN) == "Ukrainian|uk|ukr|uk-UA|uk_UA"

    def test_platform_codes(self, resolver):
        template = "%android_code%|%osx_code%|%osx_locale%"
        assert resolver.replace_language_dependent(template, None, PORTUGUESE_BR) == "pt-rBR|pt-BR.lproj|pt_BR"

    def test_mapping_overrides_attribute(self, resolver):
        mapping = LanguageMapping({LOCALE: {"uk": "ua"}})
        assert resolver.replace_language_dependent("/%locale%/%two_letters_code%", mapping, UKRAINIAN) == "/ua/uk"

    def test_expand_languages_yields_one_per_project_language(self, resolver):
        mapping = LanguageMapping({TWO_LETTERS_CODE: {"fr": "fr-custom"}})
        assert list(resolver.expand_languages("/%two_letters_code%/x", mapping)) == ["/uk/x", "/fr-custom/x"]

    def test_expansion_is_lazy_and_fresh_per_call(self, resolver):
        first = resolver.expand("%locale%", language_mapping=None)
        assert next(first) == "/uk-UA"
        assert list(resolver.expand("%locale%")) == ["/uk-UA", "/fr-FR"]


class TestExpand:
    def test_template_is_anchored_first(self, resolver):
        assert list(resolver.expand("%file_name%-%locale%", file_path="a/b.po", language=FRENCH)) == ["/b-fr-FR"]

    def test_anchor_keeps_leading_separator(self):
        assert anchor("/already") == "/already"
        assert anchor("relative/path") == "/relative/path"

    @pytest.mark.parametrize("resolved", ["/uk/first.po", "/folder/second-CR-uk.po", "/plain"])
    def test_idempotent_on_resolved_paths(self, resolver, resolved):
        once = list(resolver.expand(resolved, file_path="/home/app/folder/x.po"))
        assert once == [resolved, resolved]
        twice = [value for path in once for value in resolver.expand(path, file_path="/home/app/folder/x.po")]
        assert set(twice) == {resolved}

    def test_ignore_patterns_expanded_for_all_languages(self, resolver):
        patterns = resolver.expand_ignore_patterns(["/%two_letters_code%/**", "/tmp/*"])
        assert patterns == ["/uk/**", "/fr/**", "/tmp/*"]


class TestDoubleAsterisk:
    def test_captured_directories_replace_translation_asterisk(self):
        result = replace_double_asterisk("/src/**/*.po", "/out/**/%file_name%.po", "src/a/b/x.po")
        assert result == "/out/a/b/%file_name%.po"

    def test_empty_capture_collapses_separators(self):
        assert replace_double_asterisk("/**/*.po", "/out/**/x.po", "x.po") == "/out/x.po"

    def test_only_first_translation_asterisk_is_replaced(self):
        result = replace_double_asterisk("/**/*.po", "/**/locale/**/x", "a/b/x.po")
        assert result == "/a/b/locale/**/x"

    def test_only_first_source_asterisk_is_captured(self):
        result = replace_double_asterisk("/**/mid/**/*.po", "/out/**/x", "a/mid/b/c/x.po")
        assert result == "/out/a/x"

    def test_source_without_asterisk_substitutes_nothing(self):
        assert replace_double_asterisk("/*.po", "/out/**/x", "x.po") == "/out/x"

    def test_trailing_asterisk_strips_file_name(self):
        assert replace_double_asterisk("/src/**", "/out/**/x", "src/a/b.po") == "/out/a/x"

    def test_template_without_asterisk_unchanged(self):
        assert replace_double_asterisk("/**/*.po", "/out/x", "a/x.po") == "/out/x"


def test_translation_replace_applied_in_order():
    replaced = apply_translation_replace("/uk-UA/strings.uk-UA.po", {"uk-UA": "ua", ".po": ".pot"})
    assert replaced == "/ua/strings.ua.pot"
    assert apply_translation_replace("/x", None) == "/x"
