"""Tests for the PHP tokenizer."""

from __future__ import annotations

from selfaudit.scan.tokenizer import TokenKind, next_significant, prev_significant, tokenize


def _significant(source: str) -> list[tuple[TokenKind, str]]:
    return [(t.kind, t.text) for t in tokenize(source) if not t.is_trivia]


class TestTokenize:
    """Lexeme classification tests."""

    def test_given_source_when_tokenized_then_text_round_trips(self) -> None:
        """Concatenated token text reproduces the input exactly."""
        source = "<html>\n<?php\n// note\n$a = 'x'; /* block */ echo \"hi $a\";\n?>\ntail"

        assert "".join(t.text for t in tokenize(source)) == source

    def test_given_inline_html_when_tokenized_then_open_tag_split(self) -> None:
        """Text before the open tag is inline HTML."""
        tokens = tokenize("<p>x</p><?php echo 1;")

        assert tokens[0].kind is TokenKind.INLINE_HTML
        assert tokens[1].kind is TokenKind.OPEN_TAG

    def test_given_multiline_source_when_tokenized_then_lines_tracked(self) -> None:
        """Tokens record their 1-based start line."""
        tokens = tokenize("<?php\n\n$a = 1;\n/**\n * doc\n */\nfunction f() {}\n")
        by_text = {t.text: t for t in tokens}

        assert by_text["$a"].line == 3
        assert by_text["function"].line == 7

    def test_given_member_names_when_tokenized_then_keywords_become_identifiers(self) -> None:
        """Keywords after ``->`` or ``function`` are identifiers, ``Foo::class`` is not."""
        tokens = _significant("<?php class A { function new() {} } $this->class; Foo::class;")

        assert (TokenKind.IDENTIFIER, "class") in tokens
        assert (TokenKind.IDENTIFIER, "new") in tokens
        assert (TokenKind.CLASS, "class") in tokens
        assert tokens.count((TokenKind.CLASS, "class")) == 2

    def test_given_names_when_tokenized_then_qualification_classified(self) -> None:
        """Qualified, fully-qualified and relative names get their own kinds."""
        tokens = _significant(r"<?php Foo\Bar; \Foo\Bar; namespace\Baz;")

        assert (TokenKind.NAME_QUALIFIED, r"Foo\Bar") in tokens
        assert (TokenKind.NAME_FULLY_QUALIFIED, r"\Foo\Bar") in tokens
        assert (TokenKind.NAME_RELATIVE, r"namespace\Baz") in tokens

    def test_given_strings_when_tokenized_then_interpolation_detected(self) -> None:
        """Double-quoted strings with variables are interpolated, others constant."""
        tokens = _significant("<?php 'a$b'; \"plain\"; \"has $x\";")

        assert (TokenKind.CONSTANT_STRING, "'a$b'") in tokens
        assert (TokenKind.CONSTANT_STRING, '"plain"') in tokens
        assert (TokenKind.INTERPOLATED_STRING, '"has $x"') in tokens

    def test_given_heredoc_when_tokenized_then_single_token(self) -> None:
        """A heredoc body is one token up to its closing label."""
        tokens = _significant("<?php $x = <<<EOT\nline 'one'\nEOT;\n")

        heredocs = [text for kind, text in tokens if kind is TokenKind.HEREDOC]
        assert heredocs == ["<<<EOT\nline 'one'\nEOT"]

    def test_given_broken_source_when_tokenized_then_text_still_covered(self) -> None:
        """Parse errors never raise and every byte still lands in a token."""
        source = "<?php $a = 'oops\n}}} class"
        tokens = tokenize(source)

        assert "".join(t.text for t in tokens) == source
        assert tokens[0].kind is TokenKind.OPEN_TAG

    def test_given_non_ascii_when_tokenized_then_lines_and_text_kept(self) -> None:
        """Multi-byte characters do not shift token boundaries."""
        tokens = tokenize("<?php\n$città = \"è\";\n$b;")
        by_text = {t.text: t for t in tokens}

        assert by_text["$città"].line == 2
        assert by_text["\"è\""].kind is TokenKind.CONSTANT_STRING
        assert by_text["$b"].line == 3

    def test_given_operators_when_tokenized_then_operator_kinds(self) -> None:
        """Member and arrow operators are distinguished."""
        kinds = [kind for kind, _ in _significant("<?php $a?->b; $a->c; A::d; [1 => 2]; #[Attr] function f() {}")]

        assert TokenKind.NULLSAFE_OBJECT_OPERATOR in kinds
        assert TokenKind.OBJECT_OPERATOR in kinds
        assert TokenKind.DOUBLE_COLON in kinds
        assert TokenKind.DOUBLE_ARROW in kinds
        assert TokenKind.ATTRIBUTE in kinds

    def test_given_hash_comment_when_tokenized_then_comment(self) -> None:
        """``#`` starts a comment unless it opens an attribute."""
        tokens = tokenize("<?php # hello\n$a;")

        assert tokens[2].kind is TokenKind.COMMENT
        assert tokens[2].text.rstrip() == "# hello"


class TestSignificantNavigation:
    """Trivia-skipping cursor helpers."""

    def test_given_trivia_when_navigating_then_skipped(self) -> None:
        """Both directions skip whitespace and comments."""
        tokens = tokenize("<?php a /* x */ b")
        a = next(i for i, t in enumerate(tokens) if t.text == "a")
        b = next(i for i, t in enumerate(tokens) if t.text == "b")

        assert next_significant(tokens, a + 1) == b
        assert prev_significant(tokens, b - 1) == a

    def test_given_no_more_tokens_when_navigating_then_none(self) -> None:
        """Running off either end yields None."""
        tokens = tokenize("<?php ")

        assert next_significant(tokens, 1) is None
        assert prev_significant(tokens, -1) is None
