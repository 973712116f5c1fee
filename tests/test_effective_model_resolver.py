"""Tests for the effective model resolver."""
from constants import FailureKind
from document.pom import PARENT_REF, PomDocument
from resolution.resolver import EffectiveModelResolver

from conftest import CENTRAL, pom_url, pom_xml

CORP = "https://corp.example/maven"

PARENT_BODY = """\
  <properties>
    <lib.version>1.2</lib.version>
    <shared>from-parent</shared>
  </properties>
  <dependencyManagement>
    <dependencies>
      <dependency>
        <groupId>com.example</groupId>
        <artifactId>managed</artifactId>
        <version>${lib.version}</version>
      </dependency>
    </dependencies>
  </dependencyManagement>
"""


def _child(body, parent=("com.example", "parent", "1")):
    parent_xml = ""
    if parent:
        parent_xml = (
            "  <parent>\n"
            f"    <groupId>{parent[0]}</groupId>\n"
            f"    <artifactId>{parent[1]}</artifactId>\n"
            f"    <version>{parent[2]}</version>\n"
            "  </parent>\n"
        )
    return PomDocument.parse(
        "<project>\n" + parent_xml + "  <artifactId>child</artifactId>\n" + body + "</project>\n"
    )


class TestParentChain:
    def test_properties_and_management_merge_child_wins(self, fake_http, context):
        fake_http.serve_pom("com.example", "parent", "1", PARENT_BODY)
        fake_http.serve_pom("com.example", "managed", "1.3")
        document = _child("""\
  <properties>
    <lib.version>1.3</lib.version>
  </properties>
  <dependencies>
    <dependency>
      <groupId>com.example</groupId>
      <artifactId>managed</artifactId>
    </dependency>
  </dependencies>
""")

        report = EffectiveModelResolver(context).resolve(document)

        assert report.ok
        model = report.model
        assert str(model.coordinate) == "com.example:child:1"
        assert [str(c) for c in model.parent_chain] == ["com.example:parent:1"]
        assert model.properties["shared"] == "from-parent"
        assert model.properties["lib.version"] == "1.3"
        assert model.managed_version("com.example:managed:jar") == "1.3"
        assert [str(d.coordinate) for d in model.dependencies] == ["com.example:managed:1.3"]

    def test_grandparent_chain_is_root_first(self, fake_http, context):
        fake_http.serve_pom("com.example", "grand", "1")
        fake_http.serve_pom("com.example", "parent", "1",
                            "  <parent><groupId>com.example</groupId><artifactId>grand</artifactId>"
                            "<version>1</version></parent>\n")
        report = EffectiveModelResolver(context).resolve(_child(""))
        assert [str(c) for c in report.model.parent_chain] == ["com.example:grand:1", "com.example:parent:1"]

    def test_broken_grandparent_marks_own_parent_node(self, fake_http, context):
        fake_http.serve_pom("com.example", "parent", "1",
                            "  <parent><groupId>com.example</groupId><artifactId>gone</artifactId>"
                            "<version>1</version></parent>\n")

        report = EffectiveModelResolver(context).resolve(_child(""))

        assert [(f.kind, f.target) for f in report.failures] == [(FailureKind.PARENT_UNRESOLVABLE, PARENT_REF)]
        assert report.failures[0].message.startswith("com.example:parent:1 failed. Unable to download POM.")

    def test_parent_cycle_stops(self, fake_http, context):
        fake_http.serve_pom("com.example", "parent", "1",
                            "  <parent><groupId>com.example</groupId><artifactId>parent</artifactId>"
                            "<version>1</version></parent>\n")

        report = EffectiveModelResolver(context).resolve(_child(""))

        assert report.failures[0].kind == FailureKind.PARENT_UNRESOLVABLE
        assert "Parent cycle" in report.failures[0].message

    def test_parent_without_version(self, fake_http, context):
        document = PomDocument.parse(
            "<project><parent><groupId>g</groupId><artifactId>p</artifactId></parent>"
            "<artifactId>c</artifactId></project>"
        )
        report = EffectiveModelResolver(context).resolve(document)
        assert report.failures[0].message == "No version provided"
        assert fake_http.calls == []

    def test_ancestor_repositories_join_the_registry(self, fake_http, context):
        fake_http.serve_pom("com.example", "parent", "1", f"""\
  <repositories>
    <repository><id>corp</id><url>{CORP}</url></repository>
  </repositories>
""")
        fake_http.serve(pom_url(CORP, "com.corp", "internal", "5"), pom_xml("com.corp", "internal", "5"))
        document = _child("""\
  <dependencies>
    <dependency>
      <groupId>com.corp</groupId>
      <artifactId>internal</artifactId>
      <version>5</version>
    </dependency>
  </dependencies>
""")

        report = EffectiveModelResolver(context).resolve(document)

        assert report.ok
        assert [r.id for r in report.model.repositories] == ["corp"]

    def test_workspace_parent_is_not_fetched(self, fake_http, context):
        parent = PomDocument.parse(pom_xml("com.example", "parent", "1", PARENT_BODY))
        document = _child("  <properties><x>${lib.version}</x></properties>\n")

        report = EffectiveModelResolver(context.with_workspace([parent])).resolve(document)

        assert report.ok
        assert report.model.properties["x"] == "${lib.version}"
        assert fake_http.calls == []


class TestDependencies:
    def test_property_cycle_kind(self, fake_http, context):
        document = _child("""\
  <properties><a>${b}</a><b>${a}</b></properties>
  <dependencies>
    <dependency><groupId>g</groupId><artifactId>x</artifactId><version>${a}</version></dependency>
  </dependencies>
""", parent=None)
        report = EffectiveModelResolver(context).resolve(document)
        assert report.failures[0].kind == FailureKind.PROPERTY_CYCLE
        assert report.failures[0].message == "Could not resolve property"
        assert report.failures[0].detail == "Property cycle: a -> b -> a"

    def test_results_keep_declaration_order(self, fake_http, context):
        deps = ""
        for index in range(6):
            fake_http.serve_pom("g", f"a{index}", "1")
            deps += f"<dependency><groupId>g</groupId><artifactId>a{index}</artifactId><version>1</version></dependency>"
        document = _child(f"<groupId>g</groupId><version>1</version><dependencies>{deps}</dependencies>",
                          parent=None)

        report = EffectiveModelResolver(context).resolve(document)

        assert [d.coordinate.artifact_id for d in report.model.dependencies] == [f"a{i}" for i in range(6)]

    def test_inherited_dependencies_are_part_of_the_model(self, fake_http, context):
        fake_http.serve_pom("com.example", "parent", "1", """\
  <dependencies>
    <dependency><groupId>g</groupId><artifactId>inherited</artifactId><version>1</version></dependency>
  </dependencies>
""")
        fake_http.serve_pom("g", "inherited", "1")
        report = EffectiveModelResolver(context).resolve(_child(""))
        assert [str(d.coordinate) for d in report.model.dependencies] == ["g:inherited:1"]
        assert report.model.dependencies[0].node is None

    def test_transitive_closure_skips_test_and_optional(self, fake_http, context):
        fake_http.serve_pom("g", "direct", "1", """\
  <dependencies>
    <dependency><groupId>g</groupId><artifactId>runtime</artifactId><version>1</version></dependency>
    <dependency><groupId>g</groupId><artifactId>testonly</artifactId><version>1</version><scope>test</scope></dependency>
    <dependency><groupId>g</groupId><artifactId>opt</artifactId><version>1</version><optional>true</optional></dependency>
  </dependencies>
""")
        fake_http.serve_pom("g", "runtime", "1")
        document = _child("""\
  <dependencies>
    <dependency><groupId>g</groupId><artifactId>direct</artifactId><version>1</version></dependency>
  </dependencies>
""", parent=None)

        report = EffectiveModelResolver(context).resolve(document)

        assert report.ok
        assert [str(c) for c in report.model.dependencies[0].transitive] == ["g:runtime:1"]
        assert fake_http.count("testonly") == 0
        assert fake_http.count("/opt/") == 0

    def test_root_management_overrides_transitive_version(self, fake_http, context):
        fake_http.serve_pom("g", "direct", "1", """\
  <dependencies>
    <dependency><groupId>g</groupId><artifactId>lib</artifactId><version>0.1</version></dependency>
  </dependencies>
""")
        fake_http.serve_pom("g", "lib", "2.0")
        document = _child("""\
  <dependencyManagement><dependencies>
    <dependency><groupId>g</groupId><artifactId>lib</artifactId><version>2.0</version></dependency>
  </dependencies></dependencyManagement>
  <dependencies>
    <dependency><groupId>g</groupId><artifactId>direct</artifactId><version>1</version></dependency>
  </dependencies>
""", parent=None)

        report = EffectiveModelResolver(context).resolve(document)

        assert report.ok
        assert [str(c) for c in report.model.dependencies[0].transitive] == ["g:lib:2.0"]
        assert fake_http.count("/lib/0.1/") == 0

    def test_imported_bom_supplies_versions(self, fake_http, context):
        fake_http.serve_pom("g", "bom", "1", """\
  <packaging>pom</packaging>
  <dependencyManagement><dependencies>
    <dependency><groupId>g</groupId><artifactId>lib</artifactId><version>3.0</version></dependency>
  </dependencies></dependencyManagement>
""")
        fake_http.serve_pom("g", "lib", "3.0")
        document = _child("""\
  <dependencyManagement><dependencies>
    <dependency><groupId>g</groupId><artifactId>bom</artifactId><version>1</version><type>pom</type><scope>import</scope></dependency>
  </dependencies></dependencyManagement>
  <dependencies>
    <dependency><groupId>g</groupId><artifactId>lib</artifactId></dependency>
  </dependencies>
""", parent=None)

        report = EffectiveModelResolver(context).resolve(document)

        assert report.ok
        assert str(report.model.dependencies[0].coordinate) == "g:lib:3.0"

    def test_missing_bom_marks_its_management_entry(self, fake_http, context):
        document = _child("""\
  <dependencyManagement><dependencies>
    <dependency><groupId>g</groupId><artifactId>bom</artifactId><version>1</version><type>pom</type><scope>import</scope></dependency>
  </dependencies></dependencyManagement>
""", parent=None)

        report = EffectiveModelResolver(context).resolve(document)

        assert [(f.kind, f.target) for f in report.failures] == [
            (FailureKind.DESCRIPTOR_UNAVAILABLE, "/project/dependencyManagement/dependencies/dependency[1]")
        ]
        assert report.failures[0].message == (
            "Unable to download POM. Tried repositories:\n" + CENTRAL + ": HTTP 404"
        )
