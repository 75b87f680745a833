"""
Tests for the feature-hash embedder.
"""

import os
import subprocess
import sys
import textwrap

import numpy as np
import pytest

from resilient_agent.interfaces.driver import LocatorKind
from resilient_agent.memory import FeatureHashEmbedder, cosine_similarity, tokenize
from resilient_agent.models import ActionKind, ElementQuery


@pytest.fixture
def embedder():
    return FeatureHashEmbedder(256)


class TestTokenize:
    
    def test_splits_cases_and_drops_stopwords(self):
        assert tokenize("submitButton #login_form") == ["submit", "login", "form"]
    
    def test_kebab_and_acronyms(self):
        assert tokenize("user-email HTMLParser") == ["user", "email", "html", "parser"]
    
    def test_deduplicates(self):
        assert tokenize("email emailField Email") == ["email"]
    
    def test_empty(self):
        assert tokenize(None) == []
        assert tokenize("#_-") == []


class TestEmbed:
    
    def test_unit_norm_float32_read_only(self, embedder):
        v = embedder.embed("example.com", LocatorKind.IDENTIFIER, ActionKind.CLICK, ["submit"])
        
        assert v.dtype == np.float32
        assert v.shape == (256,)
        assert float(np.linalg.norm(v)) == pytest.approx(1.0, abs=1e-6)
        with pytest.raises(ValueError):
            v[0] = 1.0
    
    def test_empty_context_is_zero(self, embedder):
        v = embedder.embed(None, None, None, [])
        assert not v.any()
    
    def test_deterministic_in_process(self, embedder):
        a = embedder.embed("example.com", LocatorKind.TEXT, ActionKind.TYPE, ["email"])
        b = FeatureHashEmbedder(256).embed("example.com", LocatorKind.TEXT, ActionKind.TYPE, ["email"])
        assert a.tobytes() == b.tobytes()
    
    def test_deterministic_across_processes(self, embedder):
        script = textwrap.dedent("""
            from resilient_agent.interfaces.driver import LocatorKind
            from resilient_agent.memory import FeatureHashEmbedder
            from resilient_agent.models import ActionKind
            v = FeatureHashEmbedder(256).embed(
                "shop.example.org", LocatorKind.ROLE, ActionKind.SELECT, ["country", "code"]
            )
            print(v.tobytes().hex())
        """)
        local = embedder.embed("shop.example.org", LocatorKind.ROLE, ActionKind.SELECT, ["country", "code"])
        
        outputs = set()
        for hash_seed in ("0", "12345"):
            env = dict(os.environ, PYTHONHASHSEED=hash_seed)
            completed = subprocess.run(
                [sys.executable, "-c", script],
                capture_output=True,
                text=True,
                env=env,
                check=True,
            )
            outputs.add(completed.stdout.strip())
        
        assert outputs == {local.tobytes().hex()}
    
    def test_blocks_do_not_overlap(self, embedder):
        layout = embedder.layout
        domain_only = embedder.embed("example.com", None, None)
        tokens_only = embedder.embed(None, None, None, ["example.com", "submit"])
        
        assert np.flatnonzero(domain_only).tolist()[0] in range(layout.domain.start, layout.domain.stop)
        assert all(layout.tokens.start <= i < layout.tokens.stop for i in np.flatnonzero(tokens_only))
        assert float(np.dot(domain_only, tokens_only)) == 0.0
    
    def test_locator_kinds_have_fixed_slots(self, embedder):
        vectors = [embedder.embed(None, kind, None) for kind in LocatorKind]
        for i, a in enumerate(vectors):
            for b in vectors[i + 1:]:
                assert float(np.dot(a, b)) == 0.0
    
    def test_similarity_reflects_shared_features(self, embedder):
        base = embedder.embed("example.com", LocatorKind.IDENTIFIER, ActionKind.TYPE, ["email"])
        other_kind = embedder.embed("example.com", LocatorKind.TEXT, ActionKind.TYPE, ["email"])
        other_domain = embedder.embed("other.org", LocatorKind.IDENTIFIER, ActionKind.CLICK, ["submit"])
        
        assert cosine_similarity(base, other_kind) == pytest.approx(0.75, abs=1e-6)
        assert cosine_similarity(base, other_domain) < cosine_similarity(base, other_kind)
    
    def test_dimension_must_be_multiple_of_16(self):
        with pytest.raises(ValueError):
            FeatureHashEmbedder(100)


class TestContext:
    
    def test_context_leaves_locator_kind_open(self, embedder):
        query = ElementQuery.of("id:user-email", field_name="userEmail")
        context = embedder.embed_context("example.com", ActionKind.TYPE, query)
        
        assert not context[embedder.layout.locator_kind].any()
        stored = embedder.embed("example.com", LocatorKind.IDENTIFIER, ActionKind.TYPE, ["user", "email"])
        assert cosine_similarity(context, stored) == pytest.approx(np.sqrt(3 / 4), abs=1e-6)
    
    def test_extra_tokens(self, embedder):
        with_extra = embedder.embed_context("example.com", ActionKind.CLICK, extra_tokens=["checkout"])
        without = embedder.embed_context("example.com", ActionKind.CLICK)
        assert cosine_similarity(with_extra, without) < 1.0
    
    def test_cosine_of_zero_vector(self):
        assert cosine_similarity(np.zeros(16), np.ones(16)) == 0.0
