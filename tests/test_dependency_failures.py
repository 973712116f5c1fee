"""End-to-end failure scenarios: markers, raised errors and repository fallback."""
from __future__ import annotations

import pytest

from constants import FailureKind
from document.pom import PARENT_REF, PomDocument
from errors import UnresolvedDocumentError
from resolution.annotator import resolve_document
from resolution.refresh import refresh
from resolution.upgrade import upgrade_dependency_version, upgrade_parent_version

from conftest import CENTRAL, CONNECTION_ERROR, make_context, pom_xml, write_local_pom

JENKINS = "https://repo.jenkins-ci.org/public"


class TestUnresolvableMetadata:
    def test_each_failed_metadata_download_marks_its_dependency(self, fake_http, local_repo):
        """Two metadata failures give two markers."""
        document = PomDocument.parse(pom_xml("com.mycompany.app", "my-app", "1", """\
  <dependencies>
    <dependency>
      <groupId>org.jenkins-ci.plugins</groupId>
      <artifactId>credentials</artifactId>
      <version>2.3.0</version>
    </dependency>
    <dependency>
      <groupId>org.jenkins-ci.plugins</groupId>
      <artifactId>appio</artifactId>
      <version>1.3</version>
    </dependency>
  </dependencies>
"""))
        transform = make_context(local_repo)

        changes = upgrade_dependency_version(document, transform, "*", "*", "latest.patch")

        assert changes == []
        after = document.print_all()
        assert len(after.split("Unable to download metadata")) == 3
        kinds = [m.kind for m in document.markers()]
        assert kinds == [FailureKind.METADATA_UNAVAILABLE, FailureKind.METADATA_UNAVAILABLE]


class TestUnresolvableParent:
    def test_parent_metadata_failure_marks_parent_node(self, fake_http, local_repo):
        fake_http.serve_pom("org.jenkins-ci.plugins", "credentials", "2.3.0", base=JENKINS)
        text = """<project>
  <parent>
      <groupId>org.jenkins-ci.plugins</groupId>
      <artifactId>credentials</artifactId>
      <version>2.3.0</version>
  </parent>
  <groupId>com.mycompany.app</groupId>
  <artifactId>my-app</artifactId>
  <version>1</version>
</project>"""
        parse_time = make_context(
            local_repo, repositories=[{"id": "jenkins", "url": JENKINS, "snapshots": False}],
            write_through=False,
        )
        document = PomDocument.parse(text)
        report = resolve_document(document, parse_time)
        assert report.ok
        assert [str(c) for c in report.model.parent_chain] == ["org.jenkins-ci.plugins:credentials:2.3.0"]

        transform = make_context(local_repo, write_through=False)
        upgrade_parent_version(document, transform, "*", "*", "latest.patch")

        assert document.print_all() == """<project>
  <!--~~(Unable to download metadata. Tried repositories:
https://repo.maven.apache.org/maven2: HTTP 404)~~>--><parent>
      <groupId>org.jenkins-ci.plugins</groupId>
      <artifactId>credentials</artifactId>
      <version>2.3.0</version>
  </parent>
  <groupId>com.mycompany.app</groupId>
  <artifactId>my-app</artifactId>
  <version>1</version>
</project>"""

    def test_parent_fetch_failure_marks_parent_and_stops_ascent(self, fake_http, context):
        document = PomDocument.parse("""<project>
  <parent>
    <groupId>com.missing</groupId>
    <artifactId>parent</artifactId>
    <version>3</version>
  </parent>
  <artifactId>child</artifactId>
  <dependencies>
    <dependency>
      <groupId>com.example</groupId>
      <artifactId>lib</artifactId>
      <version>${lib.version}</version>
    </dependency>
  </dependencies>
</project>""")

        report = resolve_document(document, context)

        parent_markers = document.markers(PARENT_REF)
        assert [m.kind for m in parent_markers] == [FailureKind.PARENT_UNRESOLVABLE]
        assert parent_markers[0].message == (
            "Unable to download POM. Tried repositories:\n" + CENTRAL + ": HTTP 404"
        )
        assert report.model.parent_chain == []
        # The sibling dependency is still evaluated on its own
        dep_markers = document.markers("/project/dependencies/dependency[1]")
        assert [m.message for m in dep_markers] == ["Could not resolve property"]


class TestUnresolvableTransitiveDependency:
    def test_refresh_observes_rewritten_local_pom(self, fake_http, local_repo):
        local_pom = write_local_pom(local_repo, "com.bad", "bad-artifact", "1",
                                    pom_xml("com.bad", "bad-artifact", "1"))
        document = PomDocument.parse("""<project>
  <groupId>com.mycompany.app</groupId>
  <artifactId>my-app</artifactId>
  <version>1</version>
  <dependencies>
    <dependency>
      <groupId>com.bad</groupId>
      <artifactId>bad-artifact</artifactId>
      <version>1</version>
    </dependency>
  </dependencies>
</project>
""")
        parse_time = make_context(local_repo)
        assert resolve_document(document, parse_time).ok
        assert document.markers() == []

        with open(local_pom, "w", encoding="utf-8") as fh:
            fh.write(pom_xml("com.bad", "bad-artifact", "1", """\
  <dependencies>
    <dependency>
      <groupId>doesnotexist</groupId>
      <artifactId>doesnotexist</artifactId>
      <version>1</version>
    </dependency>
    <dependency>
      <groupId>doesnotexist</groupId>
      <artifactId>another</artifactId>
      <version>1</version>
    </dependency>
  </dependencies>
"""))

        transform = make_context(local_repo)
        refresh(document, transform)

        assert document.print_trimmed() == """<project>
  <groupId>com.mycompany.app</groupId>
  <artifactId>my-app</artifactId>
  <version>1</version>
  <dependencies>
    <!--~~(doesnotexist:doesnotexist:1 failed. Unable to download POM. Tried repositories:
https://repo.maven.apache.org/maven2: HTTP 404)~~>--><!--~~(doesnotexist:another:1 failed. Unable to download POM. Tried repositories:
https://repo.maven.apache.org/maven2: HTTP 404)~~>--><dependency>
      <groupId>com.bad</groupId>
      <artifactId>bad-artifact</artifactId>
      <version>1</version>
    </dependency>
  </dependencies>
</project>"""

    def test_refresh_with_same_context_reuses_cached_outcomes(self, fake_http, local_repo):
        local_pom = write_local_pom(local_repo, "com.bad", "bad-artifact", "1",
                                    pom_xml("com.bad", "bad-artifact", "1"))
        document = PomDocument.parse(pom_xml("com.mycompany.app", "my-app", "1", """\
  <dependencies>
    <dependency>
      <groupId>com.bad</groupId>
      <artifactId>bad-artifact</artifactId>
      <version>1</version>
    </dependency>
  </dependencies>
"""))
        parse_time = make_context(local_repo)
        resolve_document(document, parse_time)
        with open(local_pom, "w", encoding="utf-8") as fh:
            fh.write(pom_xml("com.bad", "bad-artifact", "1",
                             "  <dependencies><dependency><groupId>x</groupId>"
                             "<artifactId>y</artifactId><version>1</version></dependency></dependencies>\n"))

        report = refresh(document, parse_time)

        assert report.ok
        assert document.markers() == []


class TestUnresolvableDependency:
    def test_three_independent_failures_raise_with_annotated_document(self, fake_http, context):
        document = PomDocument.parse("""<project>
  <groupId>com.mycompany.app</groupId>
  <artifactId>my-app</artifactId>
  <version>1</version>
  <dependencies>
    <dependency>
      <groupId>com.google.guava</groupId>
      <artifactId>guava</artifactId>
      <version>doesnotexist</version>
    </dependency>
    <dependency>
      <groupId>com.google.another</groupId>
      <artifactId>${doesnotexist}</artifactId>
    </dependency>
    <dependency>
      <groupId>com.google.yetanother</groupId>
      <artifactId>${doesnotexist}</artifactId>
      <version>1</version>
    </dependency>
  </dependencies>
</project>
""")

        with pytest.raises(UnresolvedDocumentError) as excinfo:
            resolve_document(document, context, attach=False)

        annotated = excinfo.value.document
        assert annotated.print_trimmed() == """<project>
  <groupId>com.mycompany.app</groupId>
  <artifactId>my-app</artifactId>
  <version>1</version>
  <dependencies>
    <!--~~(Unable to download POM. Tried repositories:
https://repo.maven.apache.org/maven2: HTTP 404)~~>--><dependency>
      <groupId>com.google.guava</groupId>
      <artifactId>guava</artifactId>
      <version>doesnotexist</version>
    </dependency>
    <!--~~(No version provided)~~>--><dependency>
      <groupId>com.google.another</groupId>
      <artifactId>${doesnotexist}</artifactId>
    </dependency>
    <!--~~(Could not resolve property)~~>--><dependency>
      <groupId>com.google.yetanother</groupId>
      <artifactId>${doesnotexist}</artifactId>
      <version>1</version>
    </dependency>
  </dependencies>
</project>"""
        assert [f.kind for f in excinfo.value.failures] == [
            FailureKind.DESCRIPTOR_UNAVAILABLE,
            FailureKind.MISSING_VERSION,
            FailureKind.UNRESOLVED_PROPERTY,
        ]
        # The caller's document is left untouched
        assert document.markers() == []
        assert annotated.identity != document.identity

    def test_missing_version_is_not_fetched(self, fake_http, context):
        document = PomDocument.parse(pom_xml("a", "b", "1", """\
  <dependencies>
    <dependency>
      <groupId>com.google.another</groupId>
      <artifactId>thing</artifactId>
    </dependency>
  </dependencies>
"""))

        resolve_document(document, context)

        assert fake_http.calls == []
        assert [m.message for m in document.markers()] == ["No version provided"]


class TestUnreachableRepository:
    def test_fallback_past_unreachable_repository_leaves_no_markers(self, fake_http, context):
        fake_http.fail("https://unreachable", CONNECTION_ERROR)
        fake_http.serve_pom("com.google.guava", "guava", "29.0-jre")
        document = PomDocument.parse(pom_xml("com.mycompany.app", "my-app", "1", """\
  <repositories>
    <repository>
      <id>unreachable</id>
      <url>https://unreachable</url>
    </repository>
  </repositories>
  <dependencies>
    <dependency>
      <groupId>com.google.guava</groupId>
      <artifactId>guava</artifactId>
      <version>29.0-jre</version>
    </dependency>
  </dependencies>
"""))
        before = document.print_all()

        report = resolve_document(document, context)

        assert report.ok
        assert document.print_all() == before
        assert [str(d.coordinate) for d in report.model.dependencies] == ["com.google.guava:guava:29.0-jre"]
        assert fake_http.count("unreachable") == 1

    def test_every_repository_is_listed_when_all_fail(self, fake_http, context):
        fake_http.fail("https://unreachable", CONNECTION_ERROR)
        document = PomDocument.parse(pom_xml("com.mycompany.app", "my-app", "1", """\
  <repositories>
    <repository>
      <id>unreachable</id>
      <url>https://unreachable</url>
    </repository>
  </repositories>
  <dependencies>
    <dependency>
      <groupId>com.google.guava</groupId>
      <artifactId>guava</artifactId>
      <version>0.0.1</version>
    </dependency>
  </dependencies>
"""))

        resolve_document(document, context)

        assert [m.message for m in document.markers()] == [
            "Unable to download POM. Tried repositories:\n"
            "https://unreachable: Connection error\n"
            + CENTRAL + ": HTTP 404"
        ]


class TestIdempotence:
    def test_reannotation_is_byte_identical(self, fake_http, context):
        document = PomDocument.parse(pom_xml("a", "b", "1", """\
  <dependencies>
    <dependency>
      <groupId>com.google.guava</groupId>
      <artifactId>guava</artifactId>
      <version>doesnotexist</version>
    </dependency>
  </dependencies>
"""))
        resolve_document(document, context)
        first = document.print_all()

        resolve_document(document, context)
        assert document.print_all() == first

        reparsed = PomDocument.parse(first)
        resolve_document(reparsed, make_context(context.registry.local.path))
        assert reparsed.print_all() == first

    def test_fixed_dependency_loses_its_marker(self, fake_http, context):
        document = PomDocument.parse(pom_xml("a", "b", "1", """\
  <properties>
    <lib.version>oops</lib.version>
  </properties>
  <dependencies>
    <dependency>
      <groupId>com.example</groupId>
      <artifactId>lib</artifactId>
      <version>${lib.version}</version>
    </dependency>
  </dependencies>
"""))
        fake_http.serve_pom("com.example", "lib", "1.0")
        resolve_document(document, context)
        assert len(document.markers()) == 1

        document.set_property("lib.version", "1.0")
        resolve_document(document, context)

        assert document.markers() == []
        assert "~~(" not in document.print_all()
